"""Content-sniffing registry that picks a decrypter for a stream."""

import os
import typing

from . import streams
from .decrypters import Decrypter, KGGDecrypter, NCMDecrypter
from .errors import FormatMismatchError, NoMatchingDecrypterError


class AutoDecrypter:
    """
    Holds one decrypter per class and tries them in registration order.

    The stream is rewound with an explicit `seek(0)` before every attempt, so a
    failed check never affects the next one.
    """

    def __init__(self, decrypters: "typing.Optional[typing.Iterable[Decrypter]]" = None):
        self._decrypters: "typing.Dict[type, Decrypter]" = {}
        if decrypters is None:
            decrypters = (NCMDecrypter(),)
        for decrypter in decrypters:
            self.add_decrypter(decrypter)

    def add_decrypter(self, decrypter: Decrypter) -> None:
        self._decrypters[type(decrypter)] = decrypter

    def add_kgg(self, db_path: "typing.Union[str, os.PathLike]") -> KGGDecrypter:
        kgg = KGGDecrypter()
        kgg.load_key_table(db_path)
        self.add_decrypter(kgg)
        return kgg

    @property
    def decrypters(self) -> "typing.Tuple[Decrypter, ...]":
        return tuple(self._decrypters.values())

    def try_get_decrypter(self, stream: typing.BinaryIO) -> "typing.Optional[Decrypter]":
        streams.ensure_input(stream)
        for decrypter in self._decrypters.values():
            stream.seek(0, os.SEEK_SET)
            try:
                decrypter.check_support(stream)
            except FormatMismatchError:
                stream.seek(0, os.SEEK_SET)
                continue
            return decrypter
        return None

    def get_decrypter(self, stream: typing.BinaryIO) -> Decrypter:
        decrypter = self.try_get_decrypter(stream)
        if decrypter is None:
            raise NoMatchingDecrypterError("No registered decrypter accepts this stream")
        return decrypter


__all__ = ["AutoDecrypter"]
