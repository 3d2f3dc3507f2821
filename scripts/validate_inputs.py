#!/usr/bin/env python
"""
Validate input data files against schema requirements.

Usage:
    python scripts/validate_inputs.py
    python scripts/validate_inputs.py --data-dir /path/to/data
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd
from attribution.config import config, TABLE_FILES
from attribution.data.loader import _load_file
from attribution.data.schema import normalise_column_names, validate_schema

# Tables the engine cannot run without
CORE_TABLES = ["clients", "consultants", "benchmarks", "timecard_lines"]


def validate_file(filepath: Path, table_name: str) -> dict:
    """Validate a single file."""
    result = {
        "exists": False,
        "format": None,
        "rows": 0,
        "columns": 0,
        "valid": False,
        "missing_required": [],
        "missing_optional": [],
        "errors": []
    }

    if filepath.with_suffix(".parquet").exists():
        result["format"] = "parquet"
    elif filepath.with_suffix(".csv").exists():
        result["format"] = "csv"
    else:
        result["errors"].append(f"File not found: {filepath}.(parquet|csv)")
        return result
    result["exists"] = True

    try:
        df = normalise_column_names(_load_file(filepath))
        result["rows"] = len(df)
        result["columns"] = len(df.columns)
    except (OSError, ValueError) as e:
        result["errors"].append(f"Failed to load: {e}")
        return result

    schema_result = validate_schema(df, table_name, strict=False)
    result["valid"] = schema_result["is_valid"]
    result["missing_required"] = schema_result["missing_required"]
    result["missing_optional"] = schema_result["missing_optional"]

    if table_name == "timecard_lines" and "timesheet_date" in df.columns:
        bad_dates = pd.to_datetime(df["timesheet_date"], errors="coerce").isna().sum()
        if bad_dates:
            result["errors"].append(f"{bad_dates:,} rows with unparsable timesheet_date")

    return result


def main():
    parser = argparse.ArgumentParser(description="Validate input data files")
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override data directory"
    )

    args = parser.parse_args()

    data_dir = Path(args.data_dir) if args.data_dir else config.data_dir
    processed_dir = data_dir / "processed"

    print("=" * 60)
    print("Data Input Validation")
    print("=" * 60)
    print(f"Source directory: {processed_dir}")
    print()

    all_valid = True

    for table_key, filename in TABLE_FILES.items():
        filepath = processed_dir / filename

        print(f"Validating: {table_key}")
        print("-" * 40)

        result = validate_file(filepath, table_key)

        if result["exists"]:
            print(f"  ✓ Found: {filename}.{result['format']}")
            print(f"    Rows: {result['rows']:,}")
            print(f"    Columns: {result['columns']}")

            if result["valid"]:
                print(f"  ✓ Schema valid")
            else:
                print(f"  ✗ Schema invalid")
                print(f"    Missing required: {result['missing_required']}")
                all_valid = False

            if result["missing_optional"]:
                print(f"  ⚠ Missing optional: {result['missing_optional']}")
        else:
            print(f"  ✗ Not found: {filename}")
            if table_key in CORE_TABLES:
                all_valid = False
                print(f"    (REQUIRED)")
            else:
                print(f"    (optional)")
            result["errors"] = []

        for err in result["errors"]:
            print(f"  ✗ Error: {err}")
            all_valid = False

        print()

    print("=" * 60)
    if all_valid:
        print("✓ All validations passed")
        sys.exit(0)
    else:
        print("✗ Validation failed - see errors above")
        sys.exit(1)


if __name__ == "__main__":
    main()
