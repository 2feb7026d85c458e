"""
CSV input for audit runs.

Records are produced lazily in file order. Problems opening or parsing the
file are fatal (InputFileError); empty key values are left for the caller to
count as row-level errors.
"""

import csv
import logging
from typing import Iterator, List, Optional

from entra_audit.models import InputRecord

logger = logging.getLogger(__name__)


class InputFileError(Exception):
    """Raised when the input file cannot be opened or parsed."""
    pass


def read_records(path: str, encoding: str = 'utf-8-sig', delimiter: str = ',') -> Iterator[InputRecord]:
    """
    Yield one InputRecord per data row of a CSV file.

    Calling again restarts from the first row.

    Raises:
        InputFileError: If the file cannot be opened or parsed
    """
    try:
        with open(path, 'r', newline='', encoding=encoding) as f:
            reader = csv.DictReader(f, delimiter=delimiter)
            for line_number, row in enumerate(reader, start=1):
                # Short rows yield None values; extra cells land under the None key
                values = {key.strip(): value or '' for key, value in row.items()
                          if key is not None and not isinstance(value, list)}
                yield InputRecord(line_number=line_number, values=values)
    except FileNotFoundError:
        raise InputFileError(f"Input file not found: {path}")
    except (csv.Error, UnicodeDecodeError) as e:
        raise InputFileError(f"Could not parse input file {path}: {e}")
    except OSError as e:
        raise InputFileError(f"Could not read input file {path}: {e}")


class CSVRowSource:
    """
    Row source bound to a file and a key column.

    The header is checked when the source is opened so an unusable file fails
    before any remote call is made.
    """

    def __init__(self, path: str, key_column: str, encoding: str = 'utf-8-sig', delimiter: str = ','):
        self.path = path
        self.key_column = key_column
        self.encoding = encoding
        self.delimiter = delimiter
        self.headers: List[str] = []

    def open(self) -> 'CSVRowSource':
        """
        Validate the file and its header.

        Raises:
            InputFileError: If the file is unreadable, has no header, or lacks the key column
        """
        self.headers = self._read_header()
        if not self.headers:
            raise InputFileError(f"Input file {self.path} has no header row")
        if self.key_column not in self.headers:
            raise InputFileError(
                f"Column '{self.key_column}' not found in {self.path} "
                f"(available: {', '.join(self.headers)})"
            )
        logger.info(f"Opened input file {self.path} (key column '{self.key_column}', "
                    f"{len(self.headers)} columns)")
        return self

    def _read_header(self) -> Optional[List[str]]:
        try:
            with open(self.path, 'r', newline='', encoding=self.encoding) as f:
                header = next(csv.reader(f, delimiter=self.delimiter), None)
        except FileNotFoundError:
            raise InputFileError(f"Input file not found: {self.path}")
        except (csv.Error, UnicodeDecodeError) as e:
            raise InputFileError(f"Could not parse input file {self.path}: {e}")
        except OSError as e:
            raise InputFileError(f"Could not read input file {self.path}: {e}")
        return [column.strip() for column in header] if header else []

    def __iter__(self) -> Iterator[InputRecord]:
        return read_records(self.path, encoding=self.encoding, delimiter=self.delimiter)
