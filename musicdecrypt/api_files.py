"""File-oriented convenience wrappers."""

from .main import musicdecrypt


def decryptfile(
    file: str,
    output_dir: str | None = None,
    overwrite: bool = False,
    kgdb: str | None = None,
    silent: bool = False,
):
    return musicdecrypt.decrypt_files(
        file,
        output_dir,
        kgdb=kgdb,
        overwrite=overwrite,
        silent=silent,
    )


def decryptdir(
    path: str,
    output_dir: str | None = None,
    recursive: bool = False,
    overwrite: bool = False,
    kgdb: str | None = None,
    silent: bool = False,
):
    files = musicdecrypt.find_input_files(path, recursive=recursive)
    if not files:
        return {}
    result = musicdecrypt.decrypt_files(
        files,
        output_dir,
        kgdb=kgdb,
        overwrite=overwrite,
        silent=silent,
    )
    return result if isinstance(result, dict) else {str(files[0]): result}


def inspectfile(file: str, kgdb: str | None = None):
    registry = musicdecrypt.build_registry([file], kgdb, silent=True)
    return musicdecrypt.inspect_file(file, registry=registry)


def dumpkgdb(db_path: str, output_path: str):
    return str(musicdecrypt.dump_kgdb(db_path, output_path))


__all__ = ["decryptfile", "decryptdir", "inspectfile", "dumpkgdb"]
