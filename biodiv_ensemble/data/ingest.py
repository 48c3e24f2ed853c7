from pathlib import Path

import pandas as pd


def load_table(path: Path, nrows=None) -> pd.DataFrame:
    """Read a site table from CSV/TSV, Excel or Parquet, chosen by file suffix."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input table not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path, nrows=nrows)
    elif suffix in {".tsv", ".txt"}:
        df = pd.read_csv(path, sep="\t", nrows=nrows)
    elif suffix in {".xlsx", ".xls"}:
        df = pd.read_excel(path, nrows=nrows)
    elif suffix == ".parquet":
        df = pd.read_parquet(path)
        if nrows is not None:
            df = df.head(nrows)
    else:
        raise ValueError(f"Unsupported table format '{suffix}' for {path}; expected csv, tsv, xlsx or parquet.")
    return df.reset_index(drop=True)
