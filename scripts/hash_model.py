#!/usr/bin/env python3
"""Create a model manifest for a model artifact.

Usage:
    python scripts/hash_model.py <model.bin> --version 1.2.0 --url https://cdn.example.com/model.bin
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from phishguard.model.manager import ModelManifest, sha256_hex


def main():
    parser = argparse.ArgumentParser(description="Print the manifest JSON for a model artifact")
    parser.add_argument("model", type=Path, help="Path to the model artifact")
    parser.add_argument("--version", required=True, help="Release version to advertise")
    parser.add_argument("--url", required=True, help="Where clients will download the artifact")
    parser.add_argument("--output", type=Path, help="Write the manifest here instead of stdout")
    args = parser.parse_args()

    model_path = args.model.expanduser()
    if not model_path.exists():
        print(f"Error: File not found: {model_path}")
        sys.exit(1)

    data = model_path.read_bytes()
    manifest = ModelManifest(
        version=args.version,
        model_url=args.url,
        hash=sha256_hex(data),
        size_bytes=len(data),
    )
    text = json.dumps(manifest.to_dict(), indent=2)

    if args.output:
        args.output.write_text(text + "\n", encoding="utf-8")
        print(f"Manifest written: {args.output}")
    else:
        print(text)


if __name__ == "__main__":
    main()
