"""Install a single secret with its ownership and mode in place first."""

from __future__ import annotations

import errno
import logging
import os
import stat
from collections.abc import Callable

from opsm.core.config.secret import SecretSpec
from opsm.core.config.validator import resolve_owner_ids
from opsm.core.errors import WriteError
from opsm.core.store.base import SecretEncoding, SecretStore

logger = logging.getLogger(__name__)

_CREATE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_EXCL | os.O_NOFOLLOW


def staging_path(path: str) -> str:
    """Return the sibling file new content is staged in before replacing *path*."""
    head, tail = os.path.split(path)
    return os.path.join(head, f".{tail}.opsm-tmp")


class SecretInstaller:
    """Writes secrets fetched from a store into a directory.

    The destination file is created empty, chowned and given its final mode
    before the secret is requested. New content is written to a staging file
    that is created with the same ownership and mode, then renamed over the
    destination, so the plaintext is never readable by anyone the declared
    ownership and mode would not allow. Existing files are always rewritten.

    Args:
        store: Store the plaintext is fetched from.
        chown_func: Injectable ``os.chown`` replacement for testing.
    """

    def __init__(
        self,
        store: SecretStore,
        chown_func: Callable[[str, int, int], None] | None = None,
    ) -> None:
        self._store = store
        self._chown = chown_func or os.chown

    def install(self, spec: SecretSpec, dest_dir: str) -> str:
        """Fetch *spec* and write it to ``dest_dir/<task_id>``.

        Args:
            spec: The secret to install.
            dest_dir: Directory receiving the file.

        Returns:
            The path of the installed file.

        Raises:
            FetchError: If the store rejects the request. A file created
                by this call is removed again, as it is for any other
                error raised by the store.
            WriteError: If the file cannot be created, secured or written.
        """
        path = os.path.join(dest_dir, spec.task_id)
        mode = spec.mode_bits
        try:
            uid, gid = resolve_owner_ids(spec.owner, spec.group)
        except KeyError as exc:
            raise WriteError(path, exc) from exc

        created = self._prepare_file(path, mode, uid, gid)

        encoding = SecretEncoding.OPENSSH if spec.key_material else SecretEncoding.RAW
        try:
            content = self._store.fetch(spec.reference, encoding)
        except Exception:
            if created:
                self._discard(path)
            raise

        if spec.key_material:
            content += b"\n"

        try:
            self._write(path, content, mode, uid, gid)
        except OSError as exc:
            if created:
                self._discard(path)
            raise WriteError(path, exc) from exc

        logger.debug("Wrote %d bytes to %s", len(content), path)
        return path

    def _prepare_file(self, path: str, mode: int, uid: int, gid: int) -> bool:
        """Create *path* if needed and apply ownership and mode.

        Returns:
            ``True`` if the file was created by this call.
        """
        created = False
        try:
            try:
                fd = os.open(path, _CREATE_FLAGS, mode)
            except FileExistsError:
                if stat.S_ISLNK(os.lstat(path).st_mode):
                    raise OSError(errno.ELOOP, "refusing to follow symlink", path) from None
                os.chmod(path, mode)
            else:
                created = True
                try:
                    # umask may have narrowed the requested bits
                    os.fchmod(fd, mode)
                finally:
                    os.close(fd)

            self._chown(path, uid, gid)
        except OSError as exc:
            if created:
                self._discard(path)
            raise WriteError(path, exc) from exc
        return created

    def _write(self, path: str, content: bytes, mode: int, uid: int, gid: int) -> None:
        staged = staging_path(path)
        # Left behind by an install that was killed mid-write
        self._discard(staged)

        fd = os.open(staged, _CREATE_FLAGS, mode)
        try:
            with os.fdopen(fd, "wb") as fh:
                os.fchmod(fh.fileno(), mode)
                self._chown(staged, uid, gid)
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(staged, path)
        except BaseException:
            self._discard(staged)
            raise

    @staticmethod
    def _discard(path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove %s", path, exc_info=True)
