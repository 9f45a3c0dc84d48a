"""OVF descriptor handling for ova-deployer."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional
from xml.etree.ElementTree import ElementTree, ParseError, iterparse, parse, register_namespace

from ovadeploy.constants import OVF_NS
from ovadeploy.exceptions import DeployError
from ovadeploy.models import FileReference

_HREF = f"{{{OVF_NS}}}href"
_ID = f"{{{OVF_NS}}}id"
_SIZE = f"{{{OVF_NS}}}size"


def _register_namespaces(path: Path) -> None:
    """Keep the descriptor's own prefixes (ovf, rasd, vmw...) when it is written back."""
    declared = [ns for _event, ns in iterparse(str(path), events=("start-ns",))]
    prefixed = {uri for prefix, uri in declared if prefix}
    for prefix, uri in declared:
        # a default namespace that also has a prefix must keep the prefix,
        # otherwise ovf:href and friends would be written unqualified
        if not prefix and uri in prefixed:
            continue
        register_namespace(prefix, uri)


class OvfDescriptor:
    def __init__(self, path: Path, tree: ElementTree) -> None:
        self.path = path
        self.tree = tree

    @classmethod
    def load(cls, path: Path) -> "OvfDescriptor":
        if not path.exists():
            raise DeployError(f"OVF descriptor not found: {path}")
        try:
            _register_namespaces(path)
            tree = parse(str(path))
        except ParseError as exc:
            raise DeployError(f"Invalid OVF descriptor {path.name}: {exc}") from exc
        return cls(path, tree)

    def _file_elements(self):
        root = self.tree.getroot()
        return root.findall(f"{{{OVF_NS}}}References/{{{OVF_NS}}}File")

    def file_references(self) -> List[FileReference]:
        refs = []
        for elem in self._file_elements():
            size = elem.get(_SIZE)
            refs.append(
                FileReference(
                    href=elem.get(_HREF, ""),
                    file_id=elem.get(_ID, ""),
                    size=int(size) if size and size.isdigit() else None,
                )
            )
        return refs

    def find_iso_reference(self, name: Optional[str] = None) -> FileReference:
        refs = self.file_references()
        for ref in refs:
            if name is not None and ref.href == name:
                return ref
            if name is None and ref.href.lower().endswith(".iso"):
                return ref
        wanted = name or "*.iso"
        raise DeployError(f"{self.path.name}: no <File> reference matching {wanted}")

    def set_file_size(self, href: str, size: int) -> None:
        for elem in self._file_elements():
            if elem.get(_HREF) == href:
                elem.set(_SIZE, str(size))
                return
        raise DeployError(f"{self.path.name}: no <File> reference with href {href}")

    def save(self) -> None:
        self.tree.write(str(self.path), encoding="UTF-8", xml_declaration=True)
