"""Compile generated client source, or load a previously materialized module."""

from __future__ import annotations

import importlib.util
import sys
import types
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from dynclient.client.contract import contract_of, is_contract_type
from dynclient.utils.exceptions import ArgumentError, CompilerError, log_fatal

MODULE_PREFIX = "dynclient_generated_"


@dataclass(slots=True)
class LoadedModule:
    """A loaded client module and the public types it defines."""

    module: types.ModuleType
    types: list[type] = field(default_factory=list)
    namespaces: list[str] = field(default_factory=list)
    source: str | None = None
    path: Path | None = None

    @property
    def contract_types(self) -> list[type]:
        return [t for t in self.types if is_contract_type(t)]


def inspect_module(module: types.ModuleType, *, source: str | None = None, path: Path | None = None) -> LoadedModule:
    public = [
        obj
        for name, obj in vars(module).items()
        if isinstance(obj, type) and not name.startswith("_") and obj.__module__ == module.__name__
    ]
    namespaces = sorted({contract_of(t).namespace for t in public if is_contract_type(t)})
    return LoadedModule(module=module, types=public, namespaces=namespaces, source=source, path=path)


def _new_module_name(hint: str | None = None) -> str:
    stem = "".join(c if c.isalnum() else "_" for c in (hint or ""))
    return f"{MODULE_PREFIX}{stem + '_' if stem else ''}{uuid.uuid4().hex[:12]}"


class ModuleCompiler:
    """Compiles each source text in its own fresh module namespace."""

    def compile(
        self,
        source: str,
        *,
        module_name: str | None = None,
        output_path: Path | str | None = None,
        overwrite: bool = True,
    ) -> LoadedModule:
        name = module_name or _new_module_name()
        path = Path(output_path) if output_path else None
        if path is not None:
            if path.exists() and not overwrite:
                raise ArgumentError(f"Output file already exists: {path}", param="output_path")
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source, encoding="utf-8")
            logger.info(f"Wrote generated client module to {path}")
        filename = str(path) if path is not None else f"<{name}>"

        try:
            code = compile(source, filename, "exec")
        except SyntaxError as e:
            diagnostic = f"{filename}:{e.lineno}:{e.offset}: {e.msg}"
            raise log_fatal(CompilerError([diagnostic], name), "Client module compilation failed") from e

        module = types.ModuleType(name)
        module.__file__ = filename
        # Registered only while the body runs; the returned types keep the module alive.
        sys.modules[name] = module
        try:
            exec(code, module.__dict__)
        except Exception as e:
            raise log_fatal(CompilerError([f"{type(e).__name__}: {e}"], name), "Client module failed to load") from e
        finally:
            sys.modules.pop(name, None)
        loaded = inspect_module(module, source=source, path=path)
        logger.info(f"Compiled {name}: {len(loaded.contract_types)} contract type(s), {len(loaded.types)} type(s)")
        return loaded

    def load(self, path: Path | str) -> LoadedModule:
        """Load a materialized client module from disk, skipping generation."""
        path = Path(path)
        if not path.is_file():
            raise ArgumentError(f"Client module not found: {path}", param="path")
        name = _new_module_name(path.stem)
        spec = importlib.util.spec_from_file_location(name, path)
        if spec is None or spec.loader is None:
            raise log_fatal(CompilerError([f"cannot create module spec for {path}"], name), "Client module load failed")
        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise log_fatal(CompilerError([f"{type(e).__name__}: {e}"], name), "Client module load failed") from e
        finally:
            sys.modules.pop(name, None)
        return inspect_module(module, source=None, path=path)

    def load_from_bytes(self, data: bytes, *, module_name: str | None = None) -> LoadedModule:
        """Load a materialized client module from its bytes."""
        try:
            source = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise log_fatal(CompilerError([f"module is not UTF-8 text: {e}"], module_name), "Client module load failed") from e
        return self.compile(source, module_name=module_name)

    def load_from_module(self, module: bytes | Path | str) -> LoadedModule:
        if isinstance(module, bytes):
            return self.load_from_bytes(module)
        return self.load(module)
