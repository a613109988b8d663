from __future__ import annotations

import argparse
import importlib.metadata as importlib_metadata
import json
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from .backends import create_edit_client, create_generate_client
from .codec import validate_format
from .config import (
    BACKEND_BLOOM,
    BACKEND_GPT3,
    BACKEND_GPTJ,
    BACKENDS,
    Config,
    load_config,
)
from .errors import (
    BackendError,
    ConfigError,
    DecodeError,
    FilemapIOError,
    PathEscapeError,
    UnknownFilesetError,
    UnsupportedFormatError,
    WriteBackError,
)
from .filemap import Filemap
from .formats import OUTPUT_FORMATS
from .prompts import (
    build_edit_instruction,
    build_generate_prompt,
    strip_end_of_sequence,
)


def _editcrate_version() -> str:
    try:
        return importlib_metadata.version("editcrate")
    except importlib_metadata.PackageNotFoundError:
        return "0+unknown"


def _add_selection_flags(cmd: argparse.ArgumentParser, *, single_file: bool) -> None:
    cmd.add_argument(
        "-p",
        "--path",
        type=Path,
        default=Path("."),
        help="Path to the root of the repo (default: .)",
    )
    if single_file:
        cmd.add_argument(
            "-f",
            "--file",
            action="append",
            required=True,
            help="File to edit, relative to --path",
        )
    else:
        cmd.add_argument(
            "-f",
            "--file",
            action="append",
            default=None,
            help="File to include, relative to --path (repeatable)",
        )
    cmd.add_argument(
        "-s",
        "--fileset",
        action="append",
        default=None,
        help="Fileset name from the config file (repeatable, case-sensitive)",
    )
    cmd.add_argument(
        "-o",
        "--output",
        default=None,
        help=(
            "How to format printed output: "
            + " | ".join(OUTPUT_FORMATS)
            + " (default: config 'output_format' or raw)"
        ),
    )
    cmd.add_argument(
        "--encoding-errors",
        choices=["replace", "strict"],
        default=None,
        help="UTF-8 decode policy for input files (default: replace via config)",
    )
    cmd.add_argument(
        "--verbose",
        action="store_true",
        help="Debug: print flags, selected files and effective config to stderr",
    )


def _add_request_flags(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument(
        "-r",
        "--request",
        default="",
        help="Requested changes in natural language",
    )
    cmd.add_argument(
        "-w",
        "--write",
        action="store_true",
        help="Write changes to the repo files (if not set they are printed to stdout)",
    )
    cmd.add_argument(
        "-b",
        "--backend",
        choices=list(BACKENDS),
        default=None,
        help="AI backend to use (default: config 'backend' or gpt-3)",
    )
    cmd.add_argument(
        "-n",
        "--ntokens",
        type=int,
        default=None,
        help="Max number of tokens to generate",
    )
    cmd.add_argument(
        "-c",
        "--ncompletions",
        type=int,
        default=None,
        help="Number of completions to request (gpt-3 only)",
    )
    cmd.add_argument(
        "-u",
        "--url",
        default=None,
        help="Override the backend URL",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="editcrate",
        description=(
            "Send files plus a natural-language request to a text-generation "
            "backend and print or write the suggested changes."
        ),
    )
    p.add_argument(
        "--version",
        action="version",
        version=f"editcrate {_editcrate_version()}",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    generate = sub.add_parser(
        "generate",
        help="Generate new or changed files from a request using completions.",
    )
    _add_selection_flags(generate, single_file=False)
    _add_request_flags(generate)

    edit = sub.add_parser(
        "edit", help="Edit a file from a request using the edits endpoint (gpt-3)."
    )
    _add_selection_flags(edit, single_file=True)
    _add_request_flags(edit)

    show = sub.add_parser(
        "show", help="Print the selected files as they would be sent to the model."
    )
    _add_selection_flags(show, single_file=False)
    show.add_argument(
        "--prompt",
        action="store_true",
        help="Print the full completion prompt instead of the file block",
    )
    show.add_argument(
        "-r",
        "--request",
        default="",
        help="Request text used with --prompt",
    )

    apply = sub.add_parser(
        "apply",
        help="Decode a saved model response and print or write the files.",
    )
    apply.add_argument(
        "response",
        help="File containing the model output ('-' reads stdin)",
    )
    _add_selection_flags(apply, single_file=False)
    apply.add_argument(
        "-w",
        "--write",
        action="store_true",
        help="Write changes to the repo files (if not set they are printed to stdout)",
    )
    apply.add_argument(
        "--dry-run",
        action="store_true",
        help="With --write: report the files that would be written, touch nothing",
    )

    return p


def _print_top_level_help(parser: argparse.ArgumentParser) -> None:
    parser.print_help()
    print()
    print("Quick start examples:")
    print('  editcrate generate -f app.py -r "add a --verbose flag"')
    print('  editcrate edit -f README.md -r "fix typos" --write')
    print("  editcrate show -s docs -o markdown")
    print("  editcrate apply response.txt -f app.py --write")
    print()
    print("Filesets are configured in .editcrate.toml:")
    print("  [[editcrate.filesets]]")
    print('  name = "docs"')
    print('  files = ["README.md", "docs/**/*.md"]')


def _debug(args: argparse.Namespace, message: str) -> None:
    if getattr(args, "verbose", False):
        print(f"Debug: {message}", file=sys.stderr)


def _print_flags(args: argparse.Namespace) -> None:
    if not args.verbose:
        return
    print("Debug: flags:", file=sys.stderr)
    for key, value in sorted(vars(args).items()):
        print(f"  - {key:<14}: {value}", file=sys.stderr)


def _apply_cli_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    """Return a copy of ``cfg`` with command-line values taking precedence."""
    out = replace(
        cfg,
        gpt3=replace(cfg.gpt3),
        gptj=replace(cfg.gptj),
        bloom=replace(cfg.bloom),
    )
    if args.output is not None:
        out.output_format = validate_format(args.output)  # type: ignore[assignment]
    if args.encoding_errors is not None:
        out.encoding_errors = args.encoding_errors
    if getattr(args, "backend", None):
        out.backend = args.backend

    ntokens = getattr(args, "ntokens", None)
    if ntokens:
        if out.backend == BACKEND_GPT3:
            out.gpt3.max_tokens = ntokens
        elif out.backend == BACKEND_GPTJ:
            out.gptj.response_length = ntokens
        elif out.backend == BACKEND_BLOOM:
            out.bloom.max_new_tokens = ntokens
    ncompletions = getattr(args, "ncompletions", None)
    if ncompletions:
        out.gpt3.n = ncompletions
    url = getattr(args, "url", None)
    if url:
        if out.backend == BACKEND_GPT3:
            out.gpt3.url = url
        elif out.backend == BACKEND_GPTJ:
            out.gptj.url = url
        elif out.backend == BACKEND_BLOOM:
            out.bloom.url = url
    return out


def _prepare(
    parser: argparse.ArgumentParser, args: argparse.Namespace
) -> tuple[Config, Filemap]:
    root: Path = args.path
    if not root.is_dir():
        parser.error(f"{args.cmd}: --path is not a directory: {root}")
    try:
        cfg = _apply_cli_overrides(load_config(root), args)
    except (ConfigError, UnsupportedFormatError) as e:
        parser.error(f"{args.cmd}: {e}")
    if args.verbose:
        print("Debug: config:", file=sys.stderr)
        print(json.dumps(cfg.as_dict(), indent=2), file=sys.stderr)

    fm = Filemap(root, encoding_errors=cfg.encoding_errors)
    try:
        fm.load_files(args.file or [])
        if args.fileset:
            _debug(args, f"loading filesets: {args.fileset}")
        fm.load_filesets(args.fileset or [], cfg)
    except (FilemapIOError, UnknownFilesetError, PathEscapeError) as e:
        parser.error(f"{args.cmd}: error loading files: {e}")
    _debug(args, f"selected {len(fm)} file(s): {', '.join(fm.paths)}")
    return cfg, fm


def _decode_first(
    fm: Filemap, outputs: Sequence[str], args: argparse.Namespace
) -> None:
    if not outputs:
        raise SystemExit(f"{args.cmd}: backend returned no completions")
    last_error: DecodeError | None = None
    for idx, text in enumerate(outputs):
        try:
            decoded = fm.decode_from_output_text(strip_end_of_sequence(text))
        except DecodeError as e:
            _debug(args, f"completion #{idx + 1} not decodable: {e}")
            last_error = e
            continue
        _debug(
            args,
            f"using completion #{idx + 1} of {len(outputs)} "
            f"({decoded.format}, {len(decoded.files)} file(s))",
        )
        return
    assert last_error is not None
    details = "".join(f"\n  - {w}" for w in last_error.warnings)
    raise SystemExit(f"{args.cmd}: {last_error}{details}")


def _print_or_write(cfg: Config, fm: Filemap, args: argparse.Namespace) -> None:
    if not args.write:
        print(fm.encode_to_input_text_full_paths(cfg.output_format), end="")
        return
    dry_run = bool(getattr(args, "dry_run", False))
    try:
        report = fm.write_updates_to_files(dry_run=dry_run)
    except WriteBackError as e:
        r = e.report
        print(f"Written: {', '.join(r.written) or '(none)'}", file=sys.stderr)
        print(f"Not written: {', '.join(r.pending) or '(none)'}", file=sys.stderr)
        raise SystemExit(f"{args.cmd}: write failed for {e}") from e
    if dry_run:
        print(f"Dry run OK: would write {len(report.written)} file(s).")
    else:
        print(f"Wrote {len(report.written)} file(s).")
    for path in report.written:
        _debug(args, f"wrote {path}")


def _read_response(parser: argparse.ArgumentParser, source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    try:
        return Path(source).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        parser.error(f"apply: cannot read {source}: {e}")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    if not raw_argv:
        _print_top_level_help(parser)
        return

    args = parser.parse_args(raw_argv)
    _print_flags(args)
    cfg, fm = _prepare(parser, args)

    if args.cmd == "show":
        if args.prompt:
            text = build_generate_prompt(args.request, fm.encode_to_input_text())
        else:
            text = fm.encode_to_input_text_full_paths(cfg.output_format)
        print(text, end="")

    elif args.cmd == "generate":
        prompt = build_generate_prompt(args.request, fm.encode_to_input_text())
        _debug(args, f"prompt: {len(prompt):,} chars, {prompt.count(chr(10))} lines")
        try:
            outputs = create_generate_client(cfg).generate(prompt)
        except BackendError as e:
            raise SystemExit(f"generate: {e}") from e
        _decode_first(fm, outputs, args)
        _print_or_write(cfg, fm, args)

    elif args.cmd == "edit":
        try:
            outputs = create_edit_client(cfg).edit(
                fm.encode_to_input_text(), build_edit_instruction(args.request)
            )
        except BackendError as e:
            raise SystemExit(f"edit: {e}") from e
        _decode_first(fm, outputs, args)
        _print_or_write(cfg, fm, args)

    elif args.cmd == "apply":
        text = _read_response(parser, args.response)
        _decode_first(fm, [text], args)
        _print_or_write(cfg, fm, args)


if __name__ == "__main__":
    main()
