# MUSICDECRYPT ENGINE ->

import os as _os_module

from .decrypters import DEFAULT_BUFFER_SIZE as _DEFAULT_BUFFER_SIZE
from .decrypters import Decrypter, KGGDecrypter, NCMDecrypter
from .errors import FormatMismatchError, MusicDecryptError, NoMatchingDecrypterError
from .kgdb import KGDatabase
from .registry import AutoDecrypter


class musicdecrypt:
    import concurrent.futures
    import os
    import pathlib
    import shutil
    import sys
    import tempfile
    import threading
    import time
    import typing
    import colorama
    colorama.just_fix_windows_console()
    from mutagen import MutagenError

    @staticmethod
    def _env_int(name: str) -> "musicdecrypt.typing.Optional[int]":
        value = _os_module.getenv(name)
        if not value:
            return None
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return None
        if parsed <= 0:
            return None
        return parsed

    ENGINE_VERSION = "1.0.0"
    PROGRESS_BAR_WIDTH = 30
    SUPPORTED_EXTENSIONS = (".ncm", ".kgm", ".kgma", ".kgg")
    DEFAULT_KGDB_PARTS = ("AppData", "Roaming", "KuGou8", "KGMusicV3.db")
    STATUS_SUCCESS = "SUCCESS!"
    STATUS_SKIPPED = "SKIPPED!"
    STATUS_FAIL = "FAIL!"
    BUFFER_SIZE = _env_int("MUSICDECRYPT_BUFFER_SIZE") or _DEFAULT_BUFFER_SIZE
    _MAX_THREADS_ENV = _env_int("MUSICDECRYPT_MAX_THREADS")
    _CPU_COUNT = _MAX_THREADS_ENV or max(1, os.cpu_count() or 1)

    class _ProgressReporter:
        """Two-line progress reporter: overall batch bar plus the current file."""

        def __init__(self, total_files: int, stream=None, min_interval: float = 0.1):
            self.total_files = max(total_files, 1)
            self.stream = stream or musicdecrypt.sys.stdout
            self._printed = False
            self._min_interval = max(0.0, float(min_interval))
            self._is_tty = bool(getattr(self.stream, "isatty", lambda: False)())
            self._last_render = 0.0
            self._last_fraction: dict[int, float] = {}
            self._lock = musicdecrypt.threading.Lock()
            self._term_width = musicdecrypt.shutil.get_terminal_size((80, 24)).columns
            self._green = musicdecrypt.colorama.Fore.GREEN
            self._reset = musicdecrypt.colorama.Fore.RESET
            term = musicdecrypt.os.getenv("TERM")
            self._supports_ansi = self._is_tty and (
                musicdecrypt.os.name != "nt"
                or musicdecrypt.os.getenv("WT_SESSION")
                or musicdecrypt.os.getenv("ANSICON")
                or (term and term != "dumb")
            )

        def reset_terminal_state(self):
            """Leave the cursor on a fresh line once the batch is over."""
            with self._lock:
                if self._printed:
                    self.stream.write("\n")
                    self.stream.flush()
                self._printed = False

        def _render_bar(self, fraction: float, width: int | None = None) -> str:
            width = width or musicdecrypt.PROGRESS_BAR_WIDTH
            fraction = max(0.0, min(1.0, fraction))
            filled = int(fraction * width)
            if filled >= width and fraction >= 1.0 and self._supports_ansi:
                return f"({self._green}{'❚' * width}{self._reset})"
            return f"({'❚' * filled}{'·' * (width - filled)})"

        @staticmethod
        def _format_size_hint(size_hint: "musicdecrypt.typing.Tuple[int, int]") -> str:
            src, dst = size_hint
            return f"{musicdecrypt._human_readable_size(src)} -> {musicdecrypt._human_readable_size(dst)}"

        def _fit(self, line: str) -> str:
            # keep the bracketed file label visible when trimming
            max_width = self._term_width
            if len(line) <= max_width:
                return line
            head, sep, label = line.partition("[")
            if not sep:
                return line[:max_width]
            label = sep + label
            room = max(10, max_width - len(label))
            return (head[:room] + label)[:max_width]

        def _write(self, line1: str, line2: str, force: bool = False) -> None:
            now = musicdecrypt.time.monotonic()
            if not force and self._printed and (now - self._last_render) < self._min_interval:
                return
            line1 = self._fit(line1.replace("\n", " "))
            line2 = self._fit(line2.replace("\n", " "))
            if self._is_tty and self._supports_ansi:
                if self._printed:
                    self.stream.write("\x1b[1A\r")
                else:
                    self.stream.write("\r\x1b[2K")
                self.stream.write("\r\x1b[2K")
                self.stream.write(line1)
                self.stream.write("\n")
                self.stream.write("\r\x1b[2K")
                self.stream.write(line2)
                self.stream.flush()
            elif self._is_tty:
                self.stream.write(line1 + "\n")
                self.stream.write(line2)
                self.stream.flush()
            elif not self._printed or force:
                # non-TTY: first and final frames only
                self.stream.write(line1 + "\n")
                self.stream.write(line2 + "\n")
                self.stream.flush()
            self._printed = True
            self._last_render = now

        def update(
            self,
            file_index: int,
            fraction: float,
            phase: str,
            path: "musicdecrypt.pathlib.Path",
            *,
            size_hint: "musicdecrypt.typing.Optional[musicdecrypt.typing.Tuple[int, int]]" = None
        ) -> None:
            fraction = max(0.0, min(1.0, float(fraction)))
            with self._lock:
                self._last_fraction[file_index] = fraction
                overall_fraction = sum(self._last_fraction.values()) / self.total_files
                completed = sum(1 for frac in self._last_fraction.values() if frac >= 1.0)
                label = path.name if path else ""
                if self.total_files == 1:
                    status_text = "complete" if fraction >= 1.0 else f"{phase} {label}".strip()
                else:
                    status_text = f"{completed}/{self.total_files} files"
                hint_text = f" ({self._format_size_hint(size_hint)})" if size_hint else ""
                label_text = f" [{label}]" if label else ""
                line1 = f"Overall {self._render_bar(overall_fraction)} {overall_fraction * 100:3.0f}% {status_text}"
                line2 = f"File    {self._render_bar(fraction)} {fraction * 100:3.0f}% phase: {phase}{hint_text}{label_text}"
                self._write(line1, line2)

        def finalize_file(
            self,
            file_index: int,
            path: "musicdecrypt.pathlib.Path",
            *,
            phase: str = "done",
            size_hint: "musicdecrypt.typing.Optional[musicdecrypt.typing.Tuple[int, int]]" = None
        ) -> None:
            with self._lock:
                self._last_fraction[file_index] = 1.0
                overall_fraction = sum(self._last_fraction.values()) / self.total_files
                completed = sum(1 for frac in self._last_fraction.values() if frac >= 1.0)
                label = path.name if path else ""
                hint_text = f" ({self._format_size_hint(size_hint)})" if size_hint else ""
                label_text = f" [{label}]" if label else ""
                mark = f" {self._green}✓{self._reset}" if self._supports_ansi and phase == "done" else ""
                line1 = f"Overall {self._render_bar(overall_fraction)} {overall_fraction * 100:3.0f}% {completed}/{self.total_files} files"
                line2 = f"File    {self._render_bar(1.0)} 100% phase: {phase}{hint_text}{label_text}{mark}"
                self._write(line1, line2, force=True)
                self.stream.write("\n")
                self.stream.flush()
                self._printed = False

    @staticmethod
    def _human_readable_size(num_bytes: int) -> str:
        units = ["B", "KiB", "MiB", "GiB"]
        value = float(num_bytes)
        for unit in units:
            if value < 1024.0 or unit == units[-1]:
                return f"{value:.2f} {unit}"
            value /= 1024.0
        return f"{value:.2f} TiB"

    @staticmethod
    def _normalize_path(path_like: "musicdecrypt.typing.Union[str, musicdecrypt.os.PathLike]") -> "musicdecrypt.pathlib.Path":
        if isinstance(path_like, musicdecrypt.pathlib.Path):
            path = path_like
        else:
            path = musicdecrypt.pathlib.Path(str(path_like))
        path = path.expanduser()
        try:
            return path.resolve(strict=False)
        except OSError:
            return path

    @staticmethod
    def _coerce_file_list(files) -> "musicdecrypt.typing.List[musicdecrypt.pathlib.Path]":
        if isinstance(files, (str, musicdecrypt.os.PathLike)):
            candidates = [files]
        else:
            candidates = list(files)
        if not candidates:
            raise ValueError("No files provided")
        return [musicdecrypt._normalize_path(item) for item in candidates]

    @staticmethod
    def _fail(exc: BaseException) -> str:
        return f"{musicdecrypt.STATUS_FAIL} {exc}"

    # -- configuration -------------------------------------------------

    @staticmethod
    def cli_config_path() -> "musicdecrypt.pathlib.Path":
        cfg = _os_module.getenv("MUSICDECRYPT_CLI_CONFIG")
        if cfg:
            return musicdecrypt.pathlib.Path(cfg).expanduser()
        xdg = _os_module.getenv("XDG_CONFIG_HOME")
        if xdg:
            return musicdecrypt.pathlib.Path(xdg) / "musicdecrypt" / "cli.conf"
        appdata = _os_module.getenv("APPDATA")
        if appdata:
            return musicdecrypt.pathlib.Path(appdata) / "musicdecrypt" / "cli.conf"
        return musicdecrypt.pathlib.Path("~/.config/musicdecrypt/cli.conf").expanduser()

    @staticmethod
    def read_cli_config(path: "musicdecrypt.typing.Optional[musicdecrypt.pathlib.Path]" = None) -> "musicdecrypt.typing.Dict[str, str]":
        """Parse `key=value` lines; blank lines and `#` comments are ignored."""
        cfg_path = path or musicdecrypt.cli_config_path()
        values: "musicdecrypt.typing.Dict[str, str]" = {}
        try:
            text = cfg_path.read_text(encoding="utf-8")
        except OSError:
            return values
        for raw in text.splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip().lower()] = value.strip()
        return values

    @staticmethod
    def default_kgdb_path() -> "musicdecrypt.pathlib.Path":
        return musicdecrypt.pathlib.Path.home().joinpath(*musicdecrypt.DEFAULT_KGDB_PARTS)

    @staticmethod
    def resolve_kgdb_path(explicit=None) -> "musicdecrypt.pathlib.Path":
        """Explicit path, then MUSICDECRYPT_KGDB, then the CLI config, then the default."""
        if explicit:
            return musicdecrypt._normalize_path(explicit)
        env_path = _os_module.getenv("MUSICDECRYPT_KGDB")
        if env_path:
            return musicdecrypt._normalize_path(env_path)
        cfg_path = musicdecrypt.read_cli_config().get("kgdb")
        if cfg_path:
            return musicdecrypt._normalize_path(cfg_path)
        return musicdecrypt.default_kgdb_path()

    # -- discovery -----------------------------------------------------

    @staticmethod
    def is_supported_file(path: "musicdecrypt.pathlib.Path") -> bool:
        return path.suffix.lower() in musicdecrypt.SUPPORTED_EXTENSIONS

    @staticmethod
    def find_input_files(path, recursive: bool = False) -> "musicdecrypt.typing.List[musicdecrypt.pathlib.Path]":
        root = musicdecrypt._normalize_path(path)
        if root.is_file():
            return [root] if musicdecrypt.is_supported_file(root) else []
        if not root.is_dir():
            raise FileNotFoundError(f"Input path not found: {root}")
        candidates = root.rglob("*") if recursive else root.iterdir()
        return sorted(
            item for item in candidates
            if item.is_file() and musicdecrypt.is_supported_file(item)
        )

    @staticmethod
    def output_path_for(
        path: "musicdecrypt.pathlib.Path",
        output_dir: "musicdecrypt.typing.Optional[musicdecrypt.pathlib.Path]",
        extension: str
    ) -> "musicdecrypt.pathlib.Path":
        target_dir = output_dir if output_dir is not None else path.parent
        return target_dir / f"{path.stem}{extension}"

    # -- registry ------------------------------------------------------

    @staticmethod
    def build_registry(
        paths: "musicdecrypt.typing.Iterable[musicdecrypt.pathlib.Path]" = (),
        kgdb=None,
        *,
        silent: bool = False
    ) -> AutoDecrypter:
        """
        Build the default registry and add the KGG decrypter when needed.

        The key database is only decoded when an input carries a KGG header
        or a path was given explicitly. A missing database is reported and
        KGG inputs are then skipped by the caller.
        """
        registry = AutoDecrypter()
        wants_kgg = kgdb is not None or any(musicdecrypt._is_kgg_file(p) for p in paths)
        if not wants_kgg:
            return registry
        db_path = musicdecrypt.resolve_kgdb_path(kgdb)
        if not db_path.is_file():
            if not silent:
                print(f"⚠️  Key database not found: {db_path}; KGG files will be skipped")
            return registry
        registry.add_kgg(db_path)
        return registry

    @staticmethod
    def _is_kgg_stream(source) -> bool:
        try:
            KGGDecrypter().check_support(source)
        except FormatMismatchError:
            return False
        finally:
            source.seek(0, musicdecrypt.os.SEEK_SET)
        return True

    @staticmethod
    def _is_kgg_file(path) -> bool:
        try:
            with open(path, "rb") as source:
                return musicdecrypt._is_kgg_stream(source)
        except OSError:
            return False

    @staticmethod
    def _has_kgg(registry: AutoDecrypter) -> bool:
        return any(isinstance(item, KGGDecrypter) for item in registry.decrypters)

    # -- single file ---------------------------------------------------

    @staticmethod
    def decrypt_file(
        file,
        output_dir=None,
        *,
        registry: "musicdecrypt.typing.Optional[AutoDecrypter]" = None,
        overwrite: bool = False,
        buffer_size: "musicdecrypt.typing.Optional[int]" = None,
        reporter: "musicdecrypt.typing.Optional[musicdecrypt._ProgressReporter]" = None,
        file_index: int = 0,
        cancel_event: "musicdecrypt.typing.Optional[musicdecrypt.threading.Event]" = None
    ) -> str:
        """
        Decrypt one container into `<output_dir>/<stem>.<ext>`.

        Returns "SUCCESS!", "SKIPPED!" when the target exists and overwrite is
        off, or "FAIL! <reason>". Library errors do not propagate.
        """
        path = musicdecrypt._normalize_path(file)
        out_dir = musicdecrypt._normalize_path(output_dir) if output_dir else None
        chunk = buffer_size or musicdecrypt.BUFFER_SIZE
        try:
            if not path.is_file():
                raise FileNotFoundError(f"Input file not found: {path}")
            registry = registry or musicdecrypt.build_registry([path], silent=True)
            with open(path, "rb") as source:
                decrypter = registry.try_get_decrypter(source)
                if decrypter is None:
                    if not musicdecrypt._has_kgg(registry) and musicdecrypt._is_kgg_stream(source):
                        if reporter:
                            reporter.finalize_file(file_index, path, phase="skipped")
                        return f"{musicdecrypt.STATUS_SKIPPED} key database not loaded"
                    raise NoMatchingDecrypterError("No registered decrypter accepts this stream")
                audio_format = decrypter.detect_audio_format(source)
                total = decrypter.get_decrypted_size(source)
                src_size = path.stat().st_size
                dest = musicdecrypt.output_path_for(path, out_dir, audio_format.extension)
                if dest.exists() and not overwrite:
                    if reporter:
                        reporter.finalize_file(file_index, path, phase="skipped")
                    return musicdecrypt.STATUS_SKIPPED
                dest.parent.mkdir(parents=True, exist_ok=True)

                def _progress(done: int, expected: int) -> None:
                    if reporter:
                        fraction = done / expected if expected else 1.0
                        reporter.update(file_index, fraction, "decrypt", path, size_hint=(src_size, total))

                musicdecrypt._write_decrypted(
                    decrypter, source, dest, chunk, _progress, cancel_event
                )
                if isinstance(decrypter, NCMDecrypter):
                    musicdecrypt._patch_cover(decrypter, source, dest)
            if reporter:
                reporter.finalize_file(file_index, path, size_hint=(src_size, total))
            return musicdecrypt.STATUS_SUCCESS
        except (MusicDecryptError, OSError) as exc:
            if reporter:
                reporter.update(file_index, 0.0, f"error: {exc}", path)
                reporter.finalize_file(file_index, path, phase="failed")
            return musicdecrypt._fail(exc)

    @staticmethod
    def _write_decrypted(
        decrypter: Decrypter,
        source,
        dest: "musicdecrypt.pathlib.Path",
        buffer_size: int,
        progress,
        cancel_event
    ) -> int:
        with musicdecrypt.tempfile.NamedTemporaryFile(
            'w+b', dir=dest.parent, prefix=f".{dest.stem}.", suffix=".part", delete=False
        ) as tmp:
            temp_path = musicdecrypt.pathlib.Path(tmp.name)
        try:
            with open(temp_path, "wb") as sink:
                written = decrypter.decrypt_stream(
                    source, sink,
                    buffer_size=buffer_size,
                    progress=progress,
                    cancel_event=cancel_event,
                )
            musicdecrypt.os.replace(temp_path, dest)
            return written
        finally:
            try:
                musicdecrypt.os.remove(temp_path)
            except FileNotFoundError:
                pass

    @staticmethod
    def _patch_cover(decrypter: NCMDecrypter, source, dest: "musicdecrypt.pathlib.Path") -> bool:
        try:
            return decrypter.patch_cover_image(source, dest)
        except musicdecrypt.MutagenError as exc:
            print(f"⚠️  Could not embed cover art into {dest.name}: {exc}")
            return False

    # -- batch ---------------------------------------------------------

    @staticmethod
    def decrypt_files(
        files,
        output_dir=None,
        *,
        kgdb=None,
        overwrite: bool = False,
        silent: bool = False,
        buffer_size: "musicdecrypt.typing.Optional[int]" = None,
        cancel_event: "musicdecrypt.typing.Optional[musicdecrypt.threading.Event]" = None
    ):
        """Decrypt many files; returns one status string or a {path: status} dict."""
        paths = musicdecrypt._coerce_file_list(files)
        try:
            registry = musicdecrypt.build_registry(paths, kgdb, silent=silent)
        except (MusicDecryptError, OSError) as exc:
            if not silent:
                print(f"⚠️  Key database could not be loaded: {exc}; KGG files will be skipped")
            registry = musicdecrypt.build_registry([], silent=True)
        reporter = musicdecrypt._ProgressReporter(len(paths)) if not silent else None
        results: "dict[str, str]" = {}

        def _process(item: "tuple[int, musicdecrypt.pathlib.Path]") -> "tuple[str, str]":
            idx, path = item
            status = musicdecrypt.decrypt_file(
                path,
                output_dir,
                registry=registry,
                overwrite=overwrite,
                buffer_size=buffer_size,
                reporter=reporter,
                file_index=idx,
                cancel_event=cancel_event,
            )
            return str(path), status

        items = list(enumerate(paths))
        use_parallel = len(paths) > 1 and musicdecrypt._CPU_COUNT > 1
        if use_parallel:
            max_workers = min(len(paths), musicdecrypt._CPU_COUNT)
            with musicdecrypt.concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
                for file_id, status in executor.map(_process, items):
                    results[file_id] = status
        else:
            for item in items:
                file_id, status = _process(item)
                results[file_id] = status

        if reporter:
            reporter.reset_terminal_state()
        if len(paths) == 1:
            return next(iter(results.values()))
        return results

    # -- inspection / database -----------------------------------------

    @staticmethod
    def inspect_file(file, registry: "musicdecrypt.typing.Optional[AutoDecrypter]" = None) -> "musicdecrypt.typing.Dict[str, musicdecrypt.typing.Any]":
        """Report container type, audio format and plaintext size without decrypting."""
        path = musicdecrypt._normalize_path(file)
        registry = registry or musicdecrypt.build_registry([path], silent=True)
        with open(path, "rb") as source:
            decrypter = registry.get_decrypter(source)
            info: "musicdecrypt.typing.Dict[str, musicdecrypt.typing.Any]" = {
                "path": str(path),
                "container": decrypter.name,
                "size": decrypter.get_decrypted_size(source),
            }
            if isinstance(decrypter, KGGDecrypter):
                info["key_id"] = decrypter.read_key_id(source)
            if isinstance(decrypter, NCMDecrypter):
                info["cover"] = decrypter.read_cover(source) is not None
            info["format"] = decrypter.detect_audio_format(source).value
        return info

    @staticmethod
    def dump_kgdb(db_path, output_path) -> "musicdecrypt.pathlib.Path":
        database = KGDatabase(musicdecrypt._normalize_path(db_path))
        return database.dump(musicdecrypt._normalize_path(output_path))


def cli(argv=None) -> int:
    import argparse

    def _cli_plain_mode() -> bool:
        if _os_module.getenv("MUSICDECRYPT_CLI_PLAIN"):
            return True
        if _os_module.getenv("NO_COLOR"):
            return True
        style = (_os_module.getenv("MUSICDECRYPT_CLI_STYLE") or "").strip().lower()
        if style in {"plain", "boring", "0", "false", "off"}:
            return True
        if style in {"color", "emoji", "on"}:
            return False
        cfg = musicdecrypt.read_cli_config()
        if cfg.get("plain", "").lower() in {"1", "true", "yes", "on"}:
            return True
        return cfg.get("style", "").lower() == "plain"

    class _CliTheme:
        def __init__(self, plain: bool):
            self.plain = plain
            self.reset = "" if plain else "\033[0m"
            self.bold = "" if plain else "\033[1m"
            self.red = "" if plain else "\033[31m"
            self.green = "" if plain else "\033[32m"
            self.yellow = "" if plain else "\033[33m"
            self.cyan = "" if plain else "\033[36m"

        def _wrap(self, msg: str, color: str, emoji: str | None = None) -> str:
            if self.plain:
                return msg
            prefix = f"{emoji} " if emoji else ""
            return f"{self.bold}{color}{prefix}{msg}{self.reset}"

        def ok(self, msg: str) -> str:
            return self._wrap(msg, self.green, "✅")

        def warn(self, msg: str) -> str:
            return self._wrap(msg, self.yellow, "⚠️")

        def err(self, msg: str) -> str:
            return self._wrap(msg, self.red, "❌")

        def info(self, msg: str) -> str:
            return self._wrap(msg, self.cyan, "✨")

    theme = _CliTheme(_cli_plain_mode())

    parser = argparse.ArgumentParser(prog="musicdecrypt", description="Decrypt protected music containers")
    subparsers = parser.add_subparsers(dest="command", required=True)

    decrypt = subparsers.add_parser(
        "decrypt",
        help="Decrypt a file or every supported file in a directory"
    )
    decrypt.add_argument("-i", "--input", required=True, help="Input file or directory")
    decrypt.add_argument("-o", "--output", default=None, help="Output directory (default: next to each input)")
    decrypt.add_argument("-w", "--overwrite", action="store_true", help="Replace existing output files")
    decrypt.add_argument("-r", "--recursive", action="store_true", help="Descend into sub-directories")
    decrypt.add_argument("--kgdb", default=None, help="Path to the KGMusicV3.db key database")
    decrypt.add_argument("--buffer-size", type=int, default=None, help="Chunk size in bytes")
    decrypt.add_argument("--silent", action="store_true", help="Hide progress bars")

    dump = subparsers.add_parser("kgdb-dump", help="Write the decrypted key database as plain SQLite")
    dump.add_argument("database", help="Encrypted KGMusicV3.db")
    dump.add_argument("output", help="Destination SQLite file")

    info = subparsers.add_parser("info", help="Show container, audio format and size")
    info.add_argument("paths", nargs="+", help="One or more container files")
    info.add_argument("--kgdb", default=None, help="Path to the KGMusicV3.db key database")

    args = parser.parse_args(argv)

    if args.command == "decrypt":
        if args.buffer_size is not None and args.buffer_size <= 0:
            parser.error("--buffer-size must be positive")
        try:
            paths = musicdecrypt.find_input_files(args.input, recursive=args.recursive)
        except FileNotFoundError as exc:
            print(theme.err(str(exc)))
            return 1
        if not paths:
            print(theme.warn(f"No supported files found in {args.input}"))
            return 1
        result = musicdecrypt.decrypt_files(
            paths,
            args.output,
            kgdb=args.kgdb,
            overwrite=args.overwrite,
            silent=args.silent,
            buffer_size=args.buffer_size,
        )
        if not isinstance(result, dict):
            result = {str(paths[0]): result}
        failures = 0
        for path, status in result.items():
            if status == musicdecrypt.STATUS_SUCCESS:
                print(theme.ok(f"{path}: {status}"))
            elif status.startswith(musicdecrypt.STATUS_SKIPPED):
                print(theme.warn(f"{path}: {status}"))
            else:
                print(theme.err(f"{path}: {status}"))
                failures += 1
        return 0 if failures == 0 else 1

    if args.command == "kgdb-dump":
        try:
            target = musicdecrypt.dump_kgdb(args.database, args.output)
        except (MusicDecryptError, OSError) as exc:
            print(theme.err(f"kgdb-dump failed: {exc}"))
            return 1
        print(theme.ok(f"Decrypted key database written to {target}"))
        return 0

    if args.command == "info":
        try:
            registry = musicdecrypt.build_registry(args.paths, args.kgdb, silent=True)
        except (MusicDecryptError, OSError) as exc:
            print(theme.warn(f"Key database could not be loaded: {exc}"))
            registry = musicdecrypt.build_registry([], silent=True)
        failures = 0
        for raw_path in args.paths:
            try:
                details = musicdecrypt.inspect_file(raw_path, registry=registry)
            except (MusicDecryptError, OSError) as exc:
                print(theme.err(f"{raw_path}: {exc}"))
                failures += 1
                continue
            extra = f" key_id={details['key_id']}" if "key_id" in details else ""
            print(theme.info(
                f"{raw_path}: container={details['container']} format={details['format']} "
                f"size={details['size']} ({musicdecrypt._human_readable_size(details['size'])}){extra}"
            ))
        return 0 if failures == 0 else 1

    return 0


def main(argv=None) -> int:
    try:
        return cli(argv)
    except KeyboardInterrupt:
        print("Exiting...")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
