from __future__ import annotations

import numpy as np
import pytest

from ratingsvd.data import RatingRecords, RatingTriple, detect_delimiter, load_ratings, parse_rating_lines
from ratingsvd.errors import InputError


def test_load_csv_skips_header_and_malformed_lines(tmp_path) -> None:
    path = tmp_path / "ratings.csv"
    path.write_text(
        "user_id,movie_id,rating\n"
        "0,0,5.0\n"
        "0,1,3\n"
        "not,a,row\n"
        "1,0\n"
        "\n"
        "1,0,4.5,ignored,extra\n"
    )

    records = load_ratings(path)

    assert len(records) == 3
    assert records.user_index.tolist() == [0, 0, 1]
    assert records.item_index.tolist() == [0, 1, 0]
    assert records.rating.tolist() == [5.0, 3.0, 4.5]
    assert records.rating.dtype == np.float64


def test_load_tab_separated_with_metadata_columns(tmp_path) -> None:
    path = tmp_path / "merged_data.txt"
    path.write_text(
        "Cust_Id\tMovie_Id\tRating\tGenres\tTitle\n"
        "1\t2\t4\tDrama\tSome, Title\n"
        "2\t1\t3\tComedy|Romance\tAnother\n"
    )

    records = load_ratings(path, index_base=1)

    assert list(records) == [
        RatingTriple(user_index=0, item_index=1, rating=4.0),
        RatingTriple(user_index=1, item_index=0, rating=3.0),
    ]


def test_header_is_always_skipped_even_if_numeric(tmp_path) -> None:
    path = tmp_path / "ratings.csv"
    path.write_text("0,0,1.0\n1,1,2.0\n")

    assert len(load_ratings(path)) == 1
    assert len(load_ratings(path, has_header=False)) == 2


def test_non_integral_indices_are_skipped() -> None:
    records, skipped = parse_rating_lines(["0.5,1,3.0", "1,1,nan", "2,2,2.0"], delimiter=",")

    assert skipped == 2
    assert records.user_index.tolist() == [2]


def test_missing_file_raises_input_error(tmp_path) -> None:
    with pytest.raises(InputError):
        load_ratings(tmp_path / "does_not_exist.csv")


def test_header_only_file_yields_no_records(tmp_path) -> None:
    path = tmp_path / "ratings.csv"
    path.write_text("user,item,rating\n")

    assert len(load_ratings(path)) == 0


def test_detect_delimiter() -> None:
    assert detect_delimiter("1\t2\t3") == "\t"
    assert detect_delimiter("1,2,3") == ","


def test_records_from_triples_and_frame_agree() -> None:
    triples = [(0, 0, 5.0), RatingTriple(1, 0, 4.0)]
    a = RatingRecords.from_triples(triples)
    b = RatingRecords.from_frame(a.to_frame())

    assert a.user_index.tolist() == b.user_index.tolist() == [0, 1]
    assert a.rating.tolist() == b.rating.tolist() == [5.0, 4.0]


def test_delimiter_detected_past_blank_lines(tmp_path) -> None:
    path = tmp_path / "ratings.tsv"
    path.write_text("u\ti\tr\n\n0\t0\t5\n1\t1\t3\n")

    records = load_ratings(path)

    assert records.user_index.tolist() == [0, 1]
    assert records.rating.tolist() == [5.0, 3.0]
