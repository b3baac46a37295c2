"""Write or verify the committed OpenAPI document for the CMS API."""

import argparse
import json
import os


def _load_app():
    # Settings require a sheet id at import time
    os.environ.setdefault("GOOGLE_SHEET_ID", "schema_check")
    from sheetcms.main import create_app

    return create_app()


def spec_text() -> str:
    spec = _load_app().openapi()
    return json.dumps(spec, indent=2, sort_keys=True) + "\n"


def write(path: str) -> str:
    text = spec_text()
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return text


def check(path: str) -> bool:
    want = spec_text()
    try:
        with open(path, "r", encoding="utf-8") as f:
            have = f.read()
    except FileNotFoundError:
        return False
    return have == want


def main(argv=None):
    ap = argparse.ArgumentParser(description="Generate or check openapi.json")
    ap.add_argument("--out", default="openapi.json")
    ap.add_argument("--check", action="store_true")
    a = ap.parse_args(argv)
    if a.check:
        if not check(a.out):
            print(
                f"{a.out} out of date. Regenerate with:\n  python -m sheetcms.openapi_tool --out {a.out}"
            )
            raise SystemExit(1)
        print(f"{a.out} up-to-date")
    else:
        text = write(a.out)
        print(f"Wrote {a.out} ({len(text)} bytes)")


if __name__ == "__main__":
    main()
