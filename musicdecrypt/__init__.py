"""
musicdecrypt - recover plain audio from encrypted music containers.

Supports NCM containers and KGG containers (the latter with a KGMusicV3.db
key database). Containers are recognised by content, not by extension.
"""

from .main import *
from .api_files import decryptdir, decryptfile, dumpkgdb, inspectfile
from .audio import AudioFormat, AudioUtils
from .decrypters import Decrypter, KGGDecrypter, NCMDecrypter, NCMKeyBox
from .errors import *
from .errors import __all__ as _error_names
from .kgdb import KGDatabase, KeyTable
from .qmc2 import Qmc2Factory, Qmc2Map, Qmc2RC4
from .registry import AutoDecrypter
from .version import __version__

__all__ = [
    "musicdecrypt",
    "cli",
    "main",
    "decryptfile",
    "decryptdir",
    "inspectfile",
    "dumpkgdb",
    "AudioFormat",
    "AudioUtils",
    "AutoDecrypter",
    "Decrypter",
    "KGDatabase",
    "KGGDecrypter",
    "KeyTable",
    "NCMDecrypter",
    "NCMKeyBox",
    "Qmc2Factory",
    "Qmc2Map",
    "Qmc2RC4",
    "__version__",
    *_error_names,
]
