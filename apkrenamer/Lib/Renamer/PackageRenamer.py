import shutil
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Tuple

from apkrenamer.Lib.Renamer.Errors import AlreadyRenamedError, FileSystemError, ManifestParseError

SMALI_EXT = ".smali"
RESOURCE_EXT = ".xml"


def insert_segment(package: str, segment: str = "mrf", index: int = 1) -> str:
    parts = package.split(".")
    parts.insert(index, segment)
    return ".".join(parts)


def package_to_path(package: str) -> str:
    return package.replace(".", "/")


def rewrite_smali(content: str, package: str, new_package: str) -> str:
    content = content.replace(package_to_path(package), package_to_path(new_package))
    return content.replace(package, new_package)


def rewrite_resource(content: str, package: str, new_package: str) -> str:
    return content.replace(package, new_package)


class PackageRenamer:
    """
    Renames the package of a decompiled APK tree in place.

    The new package is the old one with `segment` inserted after the first
    part (com.vrgame.title -> com.mrf.vrgame.title). Smali files get both the
    slash and dot forms replaced, XML files only the dot form, and the code
    directory for the second part is moved under a new `segment` directory in
    every smali root.
    """

    def __init__(self, segment: str = "mrf"):
        self.segment = segment

    def read_package(self, manifest_path: Path) -> str:
        if not manifest_path.is_file():
            raise ManifestParseError(f"Manifest not found: {manifest_path}")
        try:
            root = ET.parse(manifest_path).getroot()
        except (ET.ParseError, OSError) as e:
            raise ManifestParseError(f"Could not parse {manifest_path}: {e}") from e

        package = root.get("package")
        if not package:
            raise ManifestParseError(f"No package attribute in {manifest_path}")
        if any(not part for part in package.split(".")) or package.count(".") < 1:
            raise ManifestParseError(f"Unsupported package name '{package}' in {manifest_path}")
        return package

    def rewrite(self, source_dir: Path) -> Tuple[str, str]:
        """
        Returns (old package, new package). Everything that can be checked is
        checked before the first file is touched.
        """
        source_dir = Path(source_dir)
        package = self.read_package(source_dir / "AndroidManifest.xml")
        parts = package.split(".")
        if parts[1] == self.segment:
            raise AlreadyRenamedError(
                f"Package '{package}' already contains '{self.segment}'; refusing to rename twice"
            )
        new_package = insert_segment(package, self.segment)
        moves = self._plan_moves(source_dir, parts)

        changed = 0
        for path in sorted(source_dir.rglob("*")):
            if path.suffix not in (SMALI_EXT, RESOURCE_EXT) or not path.is_file():
                continue
            if self._rewrite_file(path, package, new_package):
                changed += 1
        print(f"[RENAMER] Replaced '{package}' with '{new_package}' in {changed} files")

        for old_dir, new_dir in moves:
            try:
                new_dir.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(old_dir), str(new_dir))
            except OSError as e:
                raise FileSystemError(f"Could not move {old_dir} to {new_dir}: {e}") from e
            print(f"[RENAMER] Moved {old_dir} -> {new_dir}")

        return package, new_package

    def _plan_moves(self, source_dir: Path, parts: List[str]) -> List[Tuple[Path, Path]]:
        smali_roots = sorted(
            d for d in source_dir.iterdir() if d.is_dir() and d.name.startswith("smali")
        )
        moves = []
        for smali_root in smali_roots:
            old_dir = smali_root / parts[0] / parts[1]
            if not old_dir.is_dir():
                continue
            new_dir = smali_root / parts[0] / self.segment / parts[1]
            if new_dir.exists():
                raise FileSystemError(f"Destination already exists: {new_dir}")
            moves.append((old_dir, new_dir))

        if not moves:
            raise FileSystemError(
                f"No code directory {parts[0]}/{parts[1]} found under any smali root of {source_dir}"
            )
        return moves

    def _rewrite_file(self, path: Path, package: str, new_package: str) -> bool:
        try:
            content = path.read_bytes().decode("utf-8", "surrogateescape")
            if path.suffix == SMALI_EXT:
                updated = rewrite_smali(content, package, new_package)
            else:
                updated = rewrite_resource(content, package, new_package)
            if updated == content:
                return False
            path.write_bytes(updated.encode("utf-8", "surrogateescape"))
            return True
        except OSError as e:
            raise FileSystemError(f"Could not rewrite {path}: {e}") from e

    def copy_obb(self, obb_dir: Path, dest_dir: Path, package: str, new_package: str) -> List[Path]:
        if not obb_dir.is_dir():
            return []

        copied = []
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            for obb_file in sorted(p for p in obb_dir.rglob("*") if p.is_file()):
                target = dest_dir / obb_file.name.replace(package, new_package)
                if target.exists():
                    raise FileSystemError(f"OBB file already exists: {target}")
                shutil.copy2(obb_file, target)
                copied.append(target)
        except OSError as e:
            raise FileSystemError(f"Could not copy OBB files from {obb_dir}: {e}") from e

        print(f"[RENAMER] Copied {len(copied)} OBB files to {dest_dir}")
        return copied
