#!/usr/bin/env python3
"""
Command-line access to a GTM storage service.

Reads GTM_STORAGE_URL, GTM_STORAGE_API_KEY and GTM_STORAGE_TIMEOUT from the
environment (or a .env file).

Usage:
    python scripts/gtm_storage_cli.py mb <bucket>
    python scripts/gtm_storage_cli.py put <bucket> <key> <file_path>
    python scripts/gtm_storage_cli.py get <bucket> <key> [-o out] [--range START END]
    python scripts/gtm_storage_cli.py stat <bucket> <key>
    python scripts/gtm_storage_cli.py ls <bucket> [--prefix photos/]
    python scripts/gtm_storage_cli.py url <bucket> <key>
    python scripts/gtm_storage_cli.py rm <bucket> <key>
    python scripts/gtm_storage_cli.py rb <bucket>
"""
import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from gtm_storage import StorageClient, StorageError


def format_size(bytes_size: float) -> str:
    """Format bytes to human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.2f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.2f} TB"


def cmd_mb(client: StorageClient, args) -> None:
    client.make_bucket(args.bucket)
    print(f"✓ Bucket created: {args.bucket}")


def cmd_rb(client: StorageClient, args) -> None:
    client.delete_bucket(args.bucket)
    print(f"✓ Bucket deleted: {args.bucket}")


def cmd_put(client: StorageClient, args) -> None:
    result = client.put_object_from_file(args.bucket, args.key, args.file_path)
    print("✅ Upload successful!")
    print(f"   Key: {result.key}")
    print(f"   ETag: {result.etag}")
    if result.preview_url:
        print(f"   Preview URL: {result.preview_url}")
    if result.thumbnail_url:
        print(f"   Thumbnail URL: {result.thumbnail_url}")


def cmd_get(client: StorageClient, args) -> None:
    if args.range:
        stream = client.get_object_range(args.bucket, args.key, args.range[0], args.range[1])
    else:
        stream = client.get_object(args.bucket, args.key)

    with stream:
        if args.output:
            written = 0
            with open(args.output, 'wb') as f:
                for chunk in stream.iter_chunks():
                    f.write(chunk)
                    written += len(chunk)
            print(f"✓ Saved {format_size(written)} to {args.output}")
        else:
            for chunk in stream.iter_chunks():
                sys.stdout.buffer.write(chunk)
            sys.stdout.buffer.flush()


def cmd_stat(client: StorageClient, args) -> None:
    info = client.head_object(args.bucket, args.key)
    print(f"Key: {info.key}")
    print(f"Content-Type: {info.content_type}")
    print(f"Size: {format_size(info.size)} ({info.size} bytes)")
    modified = info.last_modified.isoformat() if info.last_modified else "unknown"
    print(f"Last-Modified: {modified}")
    print(f"ETag: {info.etag}")


def cmd_ls(client: StorageClient, args) -> None:
    listing = client.list_objects(args.bucket, args.prefix)
    for obj in listing:
        print(f"  - {obj.key} ({obj.content_type}, {format_size(obj.size)})")
    print(f"{len(listing)} object(s) in {args.bucket}")


def cmd_url(client: StorageClient, args) -> None:
    print(client.get_object_url(args.bucket, args.key))


def cmd_rm(client: StorageClient, args) -> None:
    client.delete_object(args.bucket, args.key)
    print(f"✓ Object deleted: {args.bucket}/{args.key}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GTM storage command-line client")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("mb", help="Create a bucket")
    p.add_argument("bucket")
    p.set_defaults(handler=cmd_mb)

    p = subparsers.add_parser("rb", help="Delete a bucket")
    p.add_argument("bucket")
    p.set_defaults(handler=cmd_rb)

    p = subparsers.add_parser("put", help="Upload a local file")
    p.add_argument("bucket")
    p.add_argument("key")
    p.add_argument("file_path")
    p.set_defaults(handler=cmd_put)

    p = subparsers.add_parser("get", help="Download an object")
    p.add_argument("bucket")
    p.add_argument("key")
    p.add_argument("-o", "--output", help="Write to this file instead of stdout")
    p.add_argument("--range", nargs=2, type=int, metavar=("START", "END"),
                   help="Download only bytes START..END (inclusive)")
    p.set_defaults(handler=cmd_get)

    p = subparsers.add_parser("stat", help="Show object metadata")
    p.add_argument("bucket")
    p.add_argument("key")
    p.set_defaults(handler=cmd_stat)

    p = subparsers.add_parser("ls", help="List objects")
    p.add_argument("bucket")
    p.add_argument("--prefix", default="")
    p.set_defaults(handler=cmd_ls)

    p = subparsers.add_parser("url", help="Print the direct URL of an object")
    p.add_argument("bucket")
    p.add_argument("key")
    p.set_defaults(handler=cmd_url)

    p = subparsers.add_parser("rm", help="Delete an object")
    p.add_argument("bucket")
    p.add_argument("key")
    p.set_defaults(handler=cmd_rm)

    return parser


def main(argv=None) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    # Load environment variables from .env
    load_dotenv()

    try:
        with StorageClient() as client:
            args.handler(client, args)
    except StorageError as e:
        print(f"❌ Storage Error: {e}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n⚠️  Cancelled by user", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
