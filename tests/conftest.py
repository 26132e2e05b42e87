"""Shared pytest fixtures for apkrenamer tests.

External tools are replaced by FakeRunner, which imitates what apktool and
uber-apk-signer leave on disk for each command it is given.
"""

from __future__ import annotations

import shutil
import zipfile
from pathlib import Path

import pytest

from apkrenamer.Lib.Renamer.AppPath import AppPath
from apkrenamer.Lib.Renamer.APKProcessor import APKProcessor
from apkrenamer.Lib.Renamer.ToolRunner import ToolResult

MANIFEST = """<?xml version="1.0" encoding="utf-8" standalone="no"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android" package="{package}">
    <application android:label="Demo">
        <activity android:name="{package}.MainActivity"/>
    </application>
</manifest>
"""

MAIN_ACTIVITY = """.class public L{path}/MainActivity;
.super Landroid/app/Activity;
.source "MainActivity.java"

.method public constructor <init>()V
    .locals 1
    const-string v0, "{package}"
    invoke-direct {{p0}}, Landroid/app/Activity;-><init>()V
    return-void
.end method
"""

STRINGS = """<?xml version="1.0" encoding="utf-8"?>
<resources>
    <string name="provider">{package}.provider</string>
</resources>
"""


def write_tree(source_dir: Path, package: str = "com.acme.demo", manifest: str | None = None) -> Path:
    """Write a minimal decompiled APK tree for `package`."""
    path = package.replace(".", "/")
    source_dir.mkdir(parents=True, exist_ok=True)
    (source_dir / "AndroidManifest.xml").write_text(
        manifest if manifest is not None else MANIFEST.format(package=package), encoding="utf-8"
    )
    smali = source_dir / "smali" / path / "MainActivity.smali"
    smali.parent.mkdir(parents=True, exist_ok=True)
    smali.write_text(MAIN_ACTIVITY.format(path=path, package=package), encoding="utf-8")
    strings = source_dir / "res" / "values" / "strings.xml"
    strings.parent.mkdir(parents=True, exist_ok=True)
    strings.write_text(STRINGS.format(package=package), encoding="utf-8")
    (source_dir / "apktool.yml").write_text(f"packageInfo:\n  renameManifestPackage: {package}\n", encoding="utf-8")
    return source_dir


class FakeRunner:
    """Stands in for ToolRunner; `exit_codes` maps a tool verb (d, b, sign) to its exit code."""

    def __init__(self, package: str = "com.acme.demo", manifest: str | None = None):
        self.package = package
        self.manifest = manifest
        self.calls: list[list[str]] = []
        self.exit_codes: dict[str, int] = {}
        self.timeouts: set[str] = set()
        self.produce_signed = True

    def run(self, command, timeout=None) -> ToolResult:
        command = [str(part) for part in command]
        self.calls.append(command)
        verb = "sign" if command[3] == "-a" else command[3]

        if verb in self.timeouts:
            return ToolResult(command, None, "", 0.0, timed_out=True)
        code = self.exit_codes.get(verb, 0)
        if code != 0:
            return ToolResult(command, code, f"{verb} failed", 0.0)

        if verb == "d":
            write_tree(Path(command[command.index("-o") + 1]), self.package, self.manifest)
        elif verb == "b":
            self._build(Path(command[4]), Path(command[command.index("-o") + 1]))
        elif verb == "sign" and self.produce_signed:
            apk = Path(command[4])
            out_dir = Path(command[command.index("-o") + 1])
            out_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy(apk, out_dir / f"{apk.stem}-aligned-debugSigned.apk")
        return ToolResult(command, 0, "ok", 0.0)

    def verbs(self) -> list[str]:
        return ["sign" if call[3] == "-a" else call[3] for call in self.calls]

    @staticmethod
    def _build(source_dir: Path, output_apk: Path):
        output_apk.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(output_apk, "w") as zf:
            zf.writestr("AndroidManifest.xml", (source_dir / "AndroidManifest.xml").read_bytes(),
                        compress_type=zipfile.ZIP_DEFLATED)
            zf.writestr("res/raw/a.bin", b"\x01" * 7, compress_type=zipfile.ZIP_STORED)
            zf.writestr("resources.arsc", b"\x02" * 33, compress_type=zipfile.ZIP_STORED)


@pytest.fixture
def paths(tmp_path: Path) -> AppPath:
    return AppPath(home_dir=tmp_path / "home", java_path="java")


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def processor(paths: AppPath, runner: FakeRunner) -> APKProcessor:
    return APKProcessor.from_paths(paths, runner=runner)


@pytest.fixture
def apk_file(tmp_path: Path) -> Path:
    apk = tmp_path / "input" / "demo.apk"
    apk.parent.mkdir(parents=True)
    with zipfile.ZipFile(apk, "w") as zf:
        zf.writestr("classes.dex", b"dex\n035\x00")
    return apk


@pytest.fixture
def make_tree():
    return write_tree
