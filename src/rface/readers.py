# -*- coding: utf-8 -*-
"""
rface.readers
=============

Readers for the two supported tabular formats.

AFM (annotated feature matrix)
    A delimited text matrix.  The first row holds column headers, the first
    column holds row headers and the upper-left cell is ignored.  Feature
    headers carry a type marker separated from the name by the header
    delimiter: ``N:age`` is numerical, ``C:sex`` and ``B:smoker`` are
    categorical.  Features may be stored either as columns or as rows; if any
    column header is a valid feature header the features are taken to be
    columns, otherwise rows.

ARFF (attribute-relation file format)
    ``@relation``, one ``@attribute <name> <type>`` line per feature and a
    ``@data`` section with one comma separated sample per line.  ``NUMERIC``
    and ``REAL`` attributes are numerical, everything else categorical.

Both readers return a :class:`RawData` holding one list of raw strings per
feature; conversion to numbers happens in :class:`rface.treedata.Treedata`.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

import pandas as pd

from .errors import ConfigurationError
from .options import GENERAL_DEFAULT_DATA_DELIMITER, GENERAL_DEFAULT_HEADER_DELIMITER

logger = logging.getLogger(__name__)

NO_SAMPLE_ID = "NO_SAMPLE_ID"

NUMERICAL_MARKERS = frozenset({"N"})
CATEGORICAL_MARKERS = frozenset({"C", "B"})


@dataclass
class RawData:
    raw_matrix: List[List[str]]  # one list per feature
    feature_headers: List[str]
    sample_headers: List[str]
    is_numerical: List[bool]

    @property
    def n_features(self) -> int:
        return len(self.feature_headers)

    @property
    def n_samples(self) -> int:
        return len(self.sample_headers)


# -----------------------------------------------------------------------------
# Header helpers
# -----------------------------------------------------------------------------
def _type_marker(header: str, header_delimiter: str) -> str | None:
    marker, sep, _ = header.partition(header_delimiter)
    return marker if sep else None


def is_valid_numerical_header(header: str, header_delimiter: str = GENERAL_DEFAULT_HEADER_DELIMITER) -> bool:
    return _type_marker(header, header_delimiter) in NUMERICAL_MARKERS


def is_valid_categorical_header(header: str, header_delimiter: str = GENERAL_DEFAULT_HEADER_DELIMITER) -> bool:
    return _type_marker(header, header_delimiter) in CATEGORICAL_MARKERS


def is_valid_feature_header(header: str, header_delimiter: str = GENERAL_DEFAULT_HEADER_DELIMITER) -> bool:
    return (is_valid_numerical_header(header, header_delimiter)
            or is_valid_categorical_header(header, header_delimiter))


# -----------------------------------------------------------------------------
# AFM
# -----------------------------------------------------------------------------
def _check_row_lengths(text: str, data_delimiter: str, path) -> None:
    """Every non-blank line must have as many cells as the header line."""
    n_cells = None
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line:
            continue
        n = line.count(data_delimiter) + 1
        if n_cells is None:
            n_cells = n
        elif n != n_cells:
            raise ConfigurationError(
                f"AFM file '{path}' line {lineno} has {n} cells, expected {n_cells}")


def read_afm(path, data_delimiter: str = GENERAL_DEFAULT_DATA_DELIMITER,
             header_delimiter: str = GENERAL_DEFAULT_HEADER_DELIMITER) -> RawData:
    """
    Read an AFM file.

    Parameters
    ----------
    path : str or Path
        File to read.
    data_delimiter : str, default="\\t"
        Cell delimiter.
    header_delimiter : str, default=":"
        Separates the type marker from the feature name in headers.

    Returns
    -------
    RawData

    Raises
    ------
    ConfigurationError
        If the file cannot be read or its rows differ in length.
    """
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ConfigurationError(f"failed to open '{path}' for reading") from e
    _check_row_lengths(text, data_delimiter, path)

    try:
        frame = pd.read_csv(io.StringIO(text), sep=data_delimiter, header=None, dtype=str,
                            na_filter=False, quoting=csv.QUOTE_NONE,
                            skip_blank_lines=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ConfigurationError(f"malformed AFM file '{path}': {e}") from e

    if frame.shape[0] < 2 or frame.shape[1] < 2:
        raise ConfigurationError(f"AFM file '{path}' has no data")

    column_headers = frame.iloc[0, 1:].tolist()
    row_headers = frame.iloc[1:, 0].tolist()
    body = frame.iloc[1:, 1:]

    features_as_rows = not any(is_valid_feature_header(h, header_delimiter) for h in column_headers)
    if features_as_rows:
        raw_matrix = body.to_numpy().tolist()
        feature_headers, sample_headers = row_headers, column_headers
    else:
        raw_matrix = body.to_numpy().T.tolist()
        feature_headers, sample_headers = column_headers, row_headers

    is_numerical = [is_valid_numerical_header(h, header_delimiter) for h in feature_headers]
    logger.info("read AFM '%s': %d features x %d samples (features as %s)",
                path, len(feature_headers), len(sample_headers),
                "rows" if features_as_rows else "columns")
    return RawData(raw_matrix, feature_headers, sample_headers, is_numerical)


# -----------------------------------------------------------------------------
# ARFF
# -----------------------------------------------------------------------------
def _parse_arff_attribute(row: str) -> tuple[str, bool]:
    parts = row.split(None, 2)
    if len(parts) < 3:
        raise ConfigurationError(f"incorrectly formatted ARFF attribute '{row}'")
    _, name, attr_type = parts
    return name, attr_type.strip().upper() in ("NUMERIC", "REAL")


def read_arff(path) -> RawData:
    """
    Read an ARFF file.

    Comment lines (``%``) and blank lines are skipped.  ARFF has no sample
    identifiers, so every sample header is ``NO_SAMPLE_ID``.

    Raises
    ------
    ConfigurationError
        If ``@relation`` or ``@data`` is missing, a header row cannot be
        parsed, or a sample has the wrong number of values.
    """
    try:
        lines = Path(path).read_text().splitlines()
    except OSError as e:
        raise ConfigurationError(f"failed to open '{path}' for reading") from e

    has_relation = False
    has_data = False
    feature_headers: List[str] = []
    is_numerical: List[bool] = []
    rows: List[List[str]] = []

    for line in lines:
        row = line.strip()
        if not row or row.startswith("%"):
            continue
        if has_data:
            values = [v.strip() for v in row.split(",")]
            if len(values) != len(feature_headers):
                raise ConfigurationError("ARFF sample contains incorrect number of features")
            rows.append(values)
            continue
        upper = row.upper()
        if not has_relation and upper.startswith("@RELATION"):
            has_relation = True
        elif upper.startswith("@ATTRIBUTE"):
            name, numerical = _parse_arff_attribute(row)
            feature_headers.append(name)
            is_numerical.append(numerical)
        elif upper.startswith("@DATA"):
            has_data = True
        else:
            raise ConfigurationError(f"incorrectly formatted ARFF row '{row}'")

    if not has_data:
        raise ConfigurationError("could not find @data/@DATA identifier")
    if not has_relation:
        raise ConfigurationError("could not find @relation/@RELATION identifier")

    raw_matrix = [list(col) for col in zip(*rows)] if rows else [[] for _ in feature_headers]
    logger.info("read ARFF '%s': %d features x %d samples", path, len(feature_headers), len(rows))
    return RawData(raw_matrix, feature_headers, [NO_SAMPLE_ID] * len(rows), is_numerical)


def read_data(path, data_delimiter: str = GENERAL_DEFAULT_DATA_DELIMITER,
              header_delimiter: str = GENERAL_DEFAULT_HEADER_DELIMITER) -> RawData:
    """Read ``path`` as ARFF when its suffix is ``.arff``, as AFM otherwise."""
    if Path(path).suffix.lower() == ".arff":
        return read_arff(path)
    return read_afm(path, data_delimiter, header_delimiter)
