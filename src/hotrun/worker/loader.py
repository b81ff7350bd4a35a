"""
The worker's import hook.

Every module load for a recognized extension is first offered to the
coordinator over the Source Bridge. The worker blocks until the coordinator
answers with transformed source (compiled in place of the file's contents)
or with an empty frame, in which case the module is loaded natively.
"""
import os
import sys
import types
import logging
import sysconfig
import threading
import functools
from importlib.machinery import (
    BYTECODE_SUFFIXES, EXTENSION_SUFFIXES, SOURCE_SUFFIXES,
    ExtensionFileLoader, FileFinder, SourceFileLoader, SourcelessFileLoader,
)
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from hotrun.bridge.messages import LoadRequest
from hotrun.bridge.protocol import SourceResponse, read_response
from hotrun.errors import ChannelClosed
from hotrun.worker.exceptions import PositionMapRegistry

log = logging.getLogger(__name__)

THIRD_PARTY_DIRS = ("site-packages", "dist-packages")


class BridgeClient:
    """
    The worker's end of the Source Bridge.

    Sends a load request over the control connection, then blocks on the
    channel for the two-frame answer. Exchanges are serialized so threads in
    the user program cannot interleave frames.
    """

    def __init__(self, connection, channel_fd: int) -> None:
        self.connection = connection
        self.channel_fd = channel_fd
        self._lock = threading.Lock()

    def request(self, path: str) -> Optional[SourceResponse]:
        """
        Asks the coordinator for the transformed source of `path`.

        :return: The response, or None when the coordinator is unreachable.
        """
        with self._lock:
            try:
                self.connection.send(LoadRequest(path))
                return read_response(self.channel_fd)
            except (ChannelClosed, OSError) as e:
                log.debug(f"Source bridge unavailable for {path}: {e}")
                return None


def default_excluded_dirs() -> Tuple[str, ...]:
    """The interpreter's own library directories, never worth a bridge round trip."""
    paths = sysconfig.get_paths()
    dirs = {paths[key] for key in ("stdlib", "platstdlib", "purelib", "platlib") if key in paths}
    return tuple(sorted(os.path.join(os.path.realpath(d), "") for d in dirs))


def is_excluded(path: str, excluded_dirs: Iterable[str]) -> bool:
    if any(part in THIRD_PARTY_DIRS for part in Path(path).parts):
        return True
    real = os.path.realpath(path)
    return any(real.startswith(d) for d in excluded_dirs)


class BridgeLoader(SourceFileLoader):
    """A source loader that prefers transformed source from the coordinator."""

    def __init__(self, fullname: str, path: str, *, client: BridgeClient, registry: PositionMapRegistry,
                 extension: str, excluded_dirs: Tuple[str, ...] = ()) -> None:
        super().__init__(fullname, path)
        self.client = client
        self.registry = registry
        self.extension = extension
        self.excluded_dirs = excluded_dirs

    def get_code(self, fullname: str) -> types.CodeType:
        path = self.get_filename(fullname)
        if not is_excluded(path, self.excluded_dirs):
            response = self.client.request(path)
            if response is not None and response.code:
                self.registry.register(path, response.position_map)
                return self.source_to_code(response.code.decode("utf-8"), path)
        return super().get_code(fullname)


def loader_details(client: BridgeClient, registry: PositionMapRegistry, extensions: Iterable[str],
                   excluded_dirs: Tuple[str, ...] = ()) -> List[Tuple[Callable, List[str]]]:
    """
    Builds FileFinder loader details with one bridge-backed loader per
    recognized extension. Extension modules, bytecode and any source suffix
    not recognized keep their native loaders.
    """
    extensions = list(dict.fromkeys(extensions))
    details: List[Tuple[Callable, List[str]]] = [(ExtensionFileLoader, list(EXTENSION_SUFFIXES))]
    for extension in extensions:
        loader = functools.partial(
            BridgeLoader, client=client, registry=registry, extension=extension, excluded_dirs=excluded_dirs
        )
        details.append((loader, [extension]))

    native_sources = [suffix for suffix in SOURCE_SUFFIXES if suffix not in extensions]
    if native_sources:
        details.append((SourceFileLoader, native_sources))
    details.append((SourcelessFileLoader, list(BYTECODE_SUFFIXES)))
    return details


def install(client: BridgeClient, registry: PositionMapRegistry, extensions: Iterable[str],
            excluded_dirs: Optional[Tuple[str, ...]] = None) -> Callable:
    """
    Installs the bridge-backed path hook in front of the default one.

    :return: The installed hook, for `uninstall`.
    :raises RuntimeError: If a bridge hook is already installed in this process.
    """
    if any(getattr(hook, "_hotrun_bridge", False) for hook in sys.path_hooks):
        raise RuntimeError("The source bridge import hook is already installed.")

    if excluded_dirs is None:
        excluded_dirs = default_excluded_dirs()
    hook = FileFinder.path_hook(*loader_details(client, registry, extensions, excluded_dirs))
    hook._hotrun_bridge = True
    sys.path_hooks.insert(0, hook)
    # Finders cached before the hook existed would bypass it.
    sys.path_importer_cache.clear()
    return hook


def uninstall(hook: Callable) -> None:
    if hook in sys.path_hooks:
        sys.path_hooks.remove(hook)
    sys.path_importer_cache.clear()


def run_main(client: BridgeClient, registry: PositionMapRegistry, argv: List[str]) -> None:
    """
    Runs the user's script as `__main__`, fetched through the bridge like
    any other module.

    :param argv: The program's argument vector; argv[0] is the script.
    """
    path = os.path.abspath(argv[0])
    sys.argv = [path, *argv[1:]]
    script_dir = os.path.dirname(path)
    if sys.path and sys.path[0] in ("", os.getcwd()):
        sys.path[0] = script_dir
    else:
        sys.path.insert(0, script_dir)

    main_module = types.ModuleType("__main__")
    main_module.__file__ = path
    main_module.__cached__ = None
    sys.modules["__main__"] = main_module

    response = client.request(path)
    if response is not None and response.code:
        registry.register(path, response.position_map)
        source = response.code.decode("utf-8")
    else:
        with open(path, "rb") as f:
            source = f.read()
    code = compile(source, path, "exec", dont_inherit=True)
    exec(code, main_module.__dict__)
