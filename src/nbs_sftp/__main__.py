"""
CLI interface for nbs-sftp.

Usage:
    python -m nbs_sftp user@host ls /in
    python -m nbs_sftp user@host ls /in --pattern '*.csv' --recursive
    python -m nbs_sftp --password user@host mv /in '*.csv' /archive --if-exists rename
    python -m nbs_sftp -i keyfile user@host rename /in/a.txt b.txt
    python -m nbs_sftp --fingerprint 'sdvA1...Ib0=' user@host rm /in/a.txt /in/b.txt
    python -m nbs_sftp user@host rm --directory /in --mask '*.tmp'
    python -m nbs_sftp user@host rmdir /old --missing throw
    python -m nbs_sftp user@host cat /in/report.txt
    python -m nbs_sftp user@host write /out/note.txt --content 'hello' --mode append
    python -m nbs_sftp user@host put ./local.csv /upload
    python -m nbs_sftp user@host get /out/report.csv ./inbox --create
    python -m nbs_sftp user@host mkdir /a/b/c
    python -m nbs_sftp --connection-file conn.json user@host ls /
    python -m nbs_sftp --keyboard-interactive --prompt 'Verification code=123456' user@host ls /

Results are printed as JSON on stdout; errors go to stderr with exit code 1.
"""
from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys
from typing import Any

from nbs_sftp.config import (
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_PORT,
    AuthenticationType,
    ConnectionDescriptor,
    PromptResponse,
    load_descriptor,
)
from nbs_sftp.conflict import FileConflictPolicy
from nbs_sftp.encoding import FileEncoding
from nbs_sftp.operations import NotExistsAction, WriteBehaviour
from nbs_sftp.walker import IncludeType

logger = logging.getLogger("nbs_sftp")


def parse_target(target: str) -> tuple[str, str | None]:
    """
    Parse a user@host target string.

    Returns:
        Tuple of (host, username) where username may be None.
    """
    if "@" in target:
        username, host = target.rsplit("@", 1)
        return host, username
    return target, None


def parse_prompt(value: str) -> PromptResponse:
    """
    Parse a --prompt PROMPT=RESPONSE value.

    The first '=' separates the two, so responses may contain '='.
    """
    prompt, sep, response = value.partition("=")
    if not sep or not prompt.strip():
        raise argparse.ArgumentTypeError(
            f"Invalid prompt '{value}'. Expected PROMPT=RESPONSE"
        )
    return PromptResponse(prompt=prompt.strip(), response=response)


def _choices(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the nbs-sftp CLI."""
    parser = argparse.ArgumentParser(
        prog="nbs-sftp",
        description="SFTP file operations with structured event logging",
        epilog="Example: python -m nbs_sftp user@host ls /in --pattern '*.txt'",
    )

    parser.add_argument(
        "target",
        metavar="[user@]host",
        help="Target host (optionally with username)",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help=f"SFTP port (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "-l", "--login",
        metavar="USER",
        help="Login username (alternative to user@host)",
    )
    parser.add_argument(
        "-i", "--identity",
        metavar="FILE",
        help="Private key file for authentication",
    )
    parser.add_argument(
        "--passphrase",
        action="store_true",
        help="Prompt for the private key passphrase",
    )
    parser.add_argument(
        "--password",
        action="store_true",
        help="Prompt for password authentication",
    )
    parser.add_argument(
        "--keyboard-interactive",
        action="store_true",
        help="Try keyboard-interactive authentication first",
    )
    parser.add_argument(
        "--prompt",
        metavar="PROMPT=RESPONSE",
        type=parse_prompt,
        action="append",
        default=[],
        help="Answer keyboard-interactive prompts containing PROMPT "
             "(can be repeated)",
    )
    parser.add_argument(
        "--fingerprint",
        metavar="FP",
        help="Expected server host key fingerprint (MD5 or SHA-256, hex or base64)",
    )
    parser.add_argument(
        "--connection-file",
        metavar="FILE",
        help="JSON file with connection settings; command line options take precedence",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help=f"Connection timeout in seconds (default: {DEFAULT_CONNECTION_TIMEOUT})",
    )
    parser.add_argument(
        "--encoding",
        choices=_choices(FileEncoding),
        default=None,
        help="Encoding of remote file names and text content (default: utf8)",
    )
    parser.add_argument(
        "--encoding-name",
        metavar="CODEC",
        help="Codec name when --encoding is 'other'",
    )
    parser.add_argument(
        "--events",
        action="store_true",
        help="Print JSONL events to stderr",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Verbose mode (-v info, -vv debug, -vvv asyncssh debug)",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet mode: only errors are logged",
    )

    sub = parser.add_subparsers(dest="operation", metavar="OPERATION", required=True)

    ls = sub.add_parser("ls", help="List a directory")
    ls.add_argument("directory")
    ls.add_argument("--pattern", default="", help="File mask, e.g. '*.txt' or '<regex>^a.*'")
    ls.add_argument("--recursive", action="store_true")
    ls.add_argument("--type", dest="include_type", choices=_choices(IncludeType),
                    default=IncludeType.BOTH.value)

    mv = sub.add_parser("mv", help="Move files matching a mask")
    mv.add_argument("directory")
    mv.add_argument("pattern")
    mv.add_argument("target_directory")
    mv.add_argument("--if-exists", choices=_choices(FileConflictPolicy),
                    default=FileConflictPolicy.THROW.value)
    mv.add_argument("--no-create", action="store_true",
                    help="Fail if the target directory does not exist")

    rename = sub.add_parser("rename", help="Rename a file within its directory")
    rename.add_argument("path")
    rename.add_argument("new_name")
    rename.add_argument("--if-exists", choices=_choices(FileConflictPolicy),
                        default=FileConflictPolicy.THROW.value)

    rm = sub.add_parser("rm", help="Delete files")
    rm.add_argument("paths", nargs="*", help="Explicit file paths (take precedence)")
    rm.add_argument("--directory", default="/")
    rm.add_argument("--mask", default="")

    rmdir = sub.add_parser("rmdir", help="Delete a directory tree")
    rmdir.add_argument("directory")
    rmdir.add_argument("--missing", choices=_choices(NotExistsAction),
                       default=NotExistsAction.SKIP.value)
    rmdir.add_argument("--no-throw", action="store_true",
                       help="Report failures in the result instead of exiting with an error")

    cat = sub.add_parser("cat", help="Print a file")
    cat.add_argument("path")
    cat.add_argument("--binary", action="store_true", help="Write raw bytes to stdout")

    write = sub.add_parser("write", help="Write text to a file")
    write.add_argument("path")
    write.add_argument("--content", help="Text to write (default: read stdin)")
    write.add_argument("--mode", choices=_choices(WriteBehaviour),
                       default=WriteBehaviour.ERROR.value)

    put = sub.add_parser("put", help="Upload a local file")
    put.add_argument("local_path")
    put.add_argument("remote_directory")
    put.add_argument("--if-exists", choices=_choices(FileConflictPolicy),
                     default=FileConflictPolicy.THROW.value)

    get = sub.add_parser("get", help="Download a remote file into a local directory")
    get.add_argument("remote_path")
    get.add_argument("local_directory")
    get.add_argument("--if-exists", choices=_choices(FileConflictPolicy),
                     default=FileConflictPolicy.THROW.value)
    get.add_argument("--create", action="store_true",
                     help="Create the local directory if missing")

    mkdir = sub.add_parser("mkdir", help="Create a directory and missing parents")
    mkdir.add_argument("path")

    return parser


def configure_logging(args: argparse.Namespace) -> None:
    """Set up logging from -v/-q."""
    quiet = getattr(args, "quiet", False)
    verbose = getattr(args, "verbose", 0) if not quiet else 0

    if quiet:
        logging.basicConfig(
            level=logging.ERROR,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            stream=sys.stderr,
        )
        logging.getLogger("asyncssh").setLevel(logging.ERROR)
    elif verbose > 0:
        level = logging.DEBUG if verbose >= 2 else logging.INFO
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            stream=sys.stderr,
        )
        if verbose >= 3:
            logging.getLogger("asyncssh").setLevel(logging.DEBUG)
        else:
            logging.getLogger("asyncssh").setLevel(logging.WARNING)
    else:
        logging.getLogger("asyncssh").setLevel(logging.WARNING)


def build_descriptor(
    args: argparse.Namespace,
    password: str | None = None,
    passphrase: str | None = None,
) -> ConnectionDescriptor:
    """
    Build a ConnectionDescriptor from parsed arguments.

    Values given on the command line override the connection file.
    """
    host, target_user = parse_target(args.target)
    username = args.login or target_user

    overrides: dict[str, Any] = {
        "address": host,
        "username": username,
        "port": args.port,
        "password": password,
        "private_key_file": args.identity,
        "private_key_passphrase": passphrase,
        "server_fingerprint": args.fingerprint,
        "connection_timeout": args.timeout,
        "file_encoding": args.encoding,
        "encoding_name": args.encoding_name,
    }
    if args.keyboard_interactive:
        overrides["use_keyboard_interactive"] = True
    if args.prompt:
        overrides["prompt_and_response"] = tuple(args.prompt)

    if args.identity:
        overrides["authentication"] = (
            AuthenticationType.USERNAME_PASSWORD_PRIVATE_KEY_FILE
            if password is not None
            else AuthenticationType.USERNAME_PRIVATE_KEY_FILE
        )

    if args.connection_file:
        return load_descriptor(args.connection_file, **overrides)

    if not username:
        username = getpass.getuser()
        overrides["username"] = username
    return ConnectionDescriptor(**{k: v for k, v in overrides.items() if v is not None})


async def dispatch(conn: Any, args: argparse.Namespace) -> Any:
    """Run the selected operation and return its result object."""
    from nbs_sftp import operations

    op = args.operation
    if op == "ls":
        return await operations.list_files(
            conn, args.directory, IncludeType(args.include_type), args.pattern, args.recursive,
        )
    if op == "mv":
        return await operations.move_files(
            conn, args.directory, args.pattern, args.target_directory,
            if_target_exists=FileConflictPolicy(args.if_exists),
            create_target_directories=not args.no_create,
        )
    if op == "rename":
        return await operations.rename_file(
            conn, args.path, args.new_name, FileConflictPolicy(args.if_exists),
        )
    if op == "rm":
        return await operations.delete_files(
            conn, args.directory, args.mask, file_paths=args.paths or None,
        )
    if op == "rmdir":
        return await operations.delete_directory(
            conn, args.directory, NotExistsAction(args.missing),
            throw_exception_on_error=not args.no_throw,
        )
    if op == "cat":
        return await operations.read_file(conn, args.path, binary=args.binary)
    if op == "write":
        content = args.content if args.content is not None else sys.stdin.read()
        return await operations.write_file(
            conn, args.path, content, WriteBehaviour(args.mode),
        )
    if op == "put":
        return await operations.upload_file(
            conn, args.local_path, args.remote_directory, FileConflictPolicy(args.if_exists),
        )
    if op == "get":
        return await operations.download_file(
            conn, args.remote_path, args.local_directory,
            FileConflictPolicy(args.if_exists), create_local_directories=args.create,
        )
    if op == "mkdir":
        created = await operations.create_directories(conn.sftp, args.path)
        return {"created": created}
    raise ValueError(f"Unknown operation: {op}")


def print_result(result: Any, args: argparse.Namespace) -> None:
    from nbs_sftp.operations import ReadResult

    if isinstance(result, ReadResult) and args.binary:
        sys.stdout.buffer.write(result.binary_content or b"")
        sys.stdout.buffer.flush()
        return
    if isinstance(result, ReadResult):
        sys.stdout.write(result.text_content or "")
        return
    payload = result.to_dict() if hasattr(result, "to_dict") else result
    print(json.dumps(payload, indent=2, default=str))


async def run_command(args: argparse.Namespace) -> int:
    """
    Connect, run one operation and print its result.

    Returns:
        0 on success, 1 on any error
    """
    from nbs_sftp.connection import SFTPConnection
    from nbs_sftp.events import EventCollector
    from nbs_sftp.operations import DeleteDirectoryResult

    configure_logging(args)

    event_collector = EventCollector() if args.events else None
    exit_code = 0

    try:
        password = getpass.getpass("Password: ") if args.password else None
        passphrase = getpass.getpass("Key passphrase: ") if args.passphrase else None
        descriptor = build_descriptor(args, password=password, passphrase=passphrase)
        logger.debug("Connection settings: %s", descriptor.to_dict())

        async with SFTPConnection(descriptor, event_collector=event_collector) as conn:
            result = await dispatch(conn, args)

        print_result(result, args)
        if isinstance(result, DeleteDirectoryResult) and not result.success:
            exit_code = 1

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        exit_code = 1

    finally:
        if event_collector and args.events:
            for event in event_collector.events:
                print(event.to_json(), file=sys.stderr)

    return exit_code


def main() -> int:
    """CLI entry point."""
    parser = create_parser()
    args = parser.parse_args()

    return asyncio.run(run_command(args))


if __name__ == "__main__":
    sys.exit(main())
