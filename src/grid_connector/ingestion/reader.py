from __future__ import annotations
from dataclasses import dataclass
from io import BytesIO
from typing import Any, List, Optional
import pandas as pd

from grid_connector.logging.logger import get_logger
from grid_connector.exceptions.errors import BackendQueryError

log = get_logger("ingestion.reader")

@dataclass(frozen=True)
class DecodedFile:
    df: pd.DataFrame
    encoding_used: str
    rows_read: int

    def to_rows(self) -> List[List[Any]]:
        """Header row followed by the data rows, every value kept as text."""
        return [list(self.df.columns)] + self.df.values.tolist()

def delimiter_for(key: str, default: str) -> str:
    return "\t" if key.lower().endswith((".tsv", ".tab")) else default

def read_delimited(
    body: bytes,
    source: str,
    delimiter: str,
    fallback_encodings: List[str],
) -> DecodedFile:
    if not body.strip():
        return DecodedFile(df=pd.DataFrame(), encoding_used=fallback_encodings[0], rows_read=0)

    last_err: Optional[Exception] = None
    for enc in fallback_encodings:
        try:
            log.info("Reading file", extra={"source_file": source, "encoding": enc})
            # dtype=str / keep_default_na=False: cells come back exactly as written
            df = pd.read_csv(
                BytesIO(body),
                sep=delimiter,
                encoding=enc,
                dtype=str,
                keep_default_na=False,
                engine="python" if len(delimiter) > 1 else "c",
            )
            return DecodedFile(df=df, encoding_used=enc, rows_read=len(df))
        except UnicodeDecodeError as e:
            last_err = e
            log.warning("Encoding error", extra={"source_file": source, "encoding": enc, "error": str(e)})
        except pd.errors.ParserError as e:
            raise BackendQueryError(f"Could not parse {source}: {e}") from e

    raise BackendQueryError(f"Failed to decode {source} with encodings: {fallback_encodings}") from last_err
