# =============================================================================
# Interactive Project Selector (fzf)
# =============================================================================

import shutil
import subprocess
import threading
from typing import Iterable, Protocol

from loguru import logger

from listprojects.channel import ItemChannel
from listprojects.errors import SelectorError
from listprojects.models import ProjectRecord, SelectionResult

# fzf exit codes: 0 = selected, 1 = no match, 2 = error, 130 = interrupted (Esc / Ctrl-C)
FZF_NO_MATCH = 1
FZF_INTERRUPTED = 130

# Paths are filesystem strings: undecodable bytes arrive as surrogate escapes
ENTRY_ENCODING = "utf-8"
ENTRY_ERRORS = "surrogateescape"


def encode_entry(index: int, record: ProjectRecord) -> bytes:
    """
    One NUL-terminated fzf entry: ``index<TAB>session_name<TAB>path``.

    fzf only shows fields 2 onwards; the index maps the chosen entry back to
    its record, so tabs or newlines inside names cannot confuse the lookup.
    """
    text = f"{index}\t{record.session_name}\t{record.path}"
    return text.encode(ENTRY_ENCODING, ENTRY_ERRORS) + b"\0"


class Selector(Protocol):
    def select(self, seed: Iterable[ProjectRecord], channel: ItemChannel) -> SelectionResult:
        ...


class FzfSelector:
    """
    Live fuzzy selector backed by fzf reading from a pipe.

    A feeder thread writes the seed items first, then whatever arrives on
    the channel, while fzf is already interactive. fzf draws its UI on the
    terminal and prints the chosen entry on stdout.
    """

    def __init__(self, command: str = "fzf", height: str = "50%", header: str = "Choose project"):
        self.command = command
        self.height = height
        self.header = header
        self._offered: dict[int, ProjectRecord] = {}
        self._offered_lock = threading.Lock()
        self._next_index = 0

    @property
    def offered(self) -> list[ProjectRecord]:
        with self._offered_lock:
            return [self._offered[i] for i in sorted(self._offered)]

    def build_command(self) -> list[str]:
        binary = shutil.which(self.command)
        if binary is None:
            raise SelectorError(f"{self.command} is not installed or not on PATH")
        return [
            binary,
            "--prompt", "project> ",
            "--header", self.header,
            "--layout", "reverse",
            "--height", self.height,
            "--read0",
            "--print0",
            "--delimiter", "\t",
            "--with-nth", "2..",
            "--no-multi",
        ]

    def select(self, seed: Iterable[ProjectRecord], channel: ItemChannel) -> SelectionResult:
        cmd = self.build_command()
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
            )
        except OSError as e:
            raise SelectorError(f"could not start {self.command}: {e}") from e

        feeder = threading.Thread(
            target=self._feed,
            args=(proc, list(seed), channel),
            name="selector-feeder",
            daemon=True,
        )
        feeder.start()

        try:
            output = proc.stdout.read()
            returncode = proc.wait()
        finally:
            # Unblock the feeder and tell discovery nobody is listening
            channel.close()

        return self.parse_result(returncode, output)

    def _feed(self, proc: subprocess.Popen, seed: list[ProjectRecord], channel: ItemChannel) -> None:
        sent = 0
        try:
            for record in seed:
                self._write(proc, record)
                sent += 1
            for record in channel:
                self._write(proc, record)
                sent += 1
        except BrokenPipeError:
            # fzf exited while we were still writing
            channel.close()
        except OSError as e:
            logger.debug(
                "Selector feed stopped",
                operation="selector_feed",
                status="stopped",
                error=str(e)
            )
            channel.close()
        finally:
            try:
                proc.stdin.close()
            except OSError:
                pass
            logger.debug(
                "Selector feed finished",
                operation="selector_feed",
                status="complete",
                metrics={"items_sent": sent, "seed_items": len(seed)}
            )

    def _write(self, proc: subprocess.Popen, record: ProjectRecord) -> None:
        index = self._next_index
        self._next_index += 1
        entry = encode_entry(index, record)

        # Registered before the write so fzf can never print an unknown index
        with self._offered_lock:
            self._offered[index] = record
        try:
            proc.stdin.write(entry)
            proc.stdin.flush()
        except OSError:
            with self._offered_lock:
                del self._offered[index]
            raise

    def parse_result(self, returncode: int, output: bytes) -> SelectionResult:
        if returncode in (FZF_NO_MATCH, FZF_INTERRUPTED):
            logger.info(
                "Selection aborted",
                operation="select_project",
                status="cancelled",
                return_code=returncode
            )
            return SelectionResult.abort()

        if returncode != 0:
            raise SelectorError(f"{self.command} failed with exit code {returncode}")

        entry = (output or b"").split(b"\0", 1)[0].strip(b"\n")
        if not entry:
            return SelectionResult.abort()

        record = self.lookup(entry)
        if record is None:
            raise SelectorError(f"{self.command} returned an unknown entry: {entry!r}")

        logger.info(
            "Project selected",
            operation="select_project",
            status="success",
            path=record.path,
            session_name=record.session_name
        )
        return SelectionResult.chosen(record)

    def lookup(self, entry: bytes) -> ProjectRecord | None:
        index_field = entry.partition(b"\t")[0]
        try:
            index = int(index_field)
        except ValueError:
            return None
        with self._offered_lock:
            return self._offered.get(index)
