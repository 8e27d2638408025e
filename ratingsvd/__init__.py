"""Low-rank rating reconstruction from sparse (user, item, rating) observations.

Core idea:
- Load pre-indexed rating triples into a dense row-major user x item matrix
- Delegate the truncated SVD to a numerical library (scipy / scikit-learn / torch)
- Reconstruct predicted ratings from (U, S, V) and persist the factors in a
  fixed binary layout for reuse
"""
