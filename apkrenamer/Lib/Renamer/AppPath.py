import os
from pathlib import Path
from typing import Optional

ALIGN_WITH_SIGNER = "signer"
ALIGN_BUILTIN = "builtin"


class AppPath:
    """
    Directory layout and tool locations for the renamer.

    Everything lives under one home directory:
        <home>/tools   apktool.jar, uber-apk-signer.jar, optional jdk/
        <home>/tmp     per-APK workspaces (tmp/<base>/source)
        <home>/output  per-APK outputs (output/<base>/...)
    """

    def __init__(
        self,
        home_dir,
        tools_dir=None,
        tmp_dir=None,
        output_dir=None,
        java_path: Optional[str] = None,
        apktool_path=None,
        signer_path=None,
        tool_timeout: float = 3600,
        segment: str = "mrf",
        align_mode: str = ALIGN_WITH_SIGNER,
        keystore_path=None,
        key_alias: Optional[str] = None,
        keystore_pass: Optional[str] = None,
        key_pass: Optional[str] = None,
    ):
        self.home_dir = Path(home_dir)
        self.tools_dir = Path(tools_dir) if tools_dir else self.home_dir / "tools"
        self.tmp_dir = Path(tmp_dir) if tmp_dir else self.home_dir / "tmp"
        self.output_dir = Path(output_dir) if output_dir else self.home_dir / "output"

        bundled_java = self.tools_dir / "jdk" / "bin" / "java"
        self.java_path = java_path or (str(bundled_java) if bundled_java.exists() else "java")
        self.apktool_path = Path(apktool_path) if apktool_path else self.tools_dir / "apktool.jar"
        self.signer_path = Path(signer_path) if signer_path else self.tools_dir / "uber-apk-signer.jar"

        if align_mode not in (ALIGN_WITH_SIGNER, ALIGN_BUILTIN):
            raise ValueError(f"Unknown align mode: {align_mode}")
        if not segment or "." in segment or "/" in segment:
            raise ValueError(f"Invalid package segment: {segment!r}")

        self.tool_timeout = tool_timeout
        self.segment = segment
        self.align_mode = align_mode
        self.keystore_path = Path(keystore_path) if keystore_path else None
        self.key_alias = key_alias
        self.keystore_pass = keystore_pass
        self.key_pass = key_pass

    @classmethod
    def from_env(cls) -> "AppPath":
        home = os.getenv("RENAMER_HOME", os.path.join(os.path.expanduser("~"), "APKRenamer"))
        return cls(
            home_dir=home,
            tools_dir=os.getenv("RENAMER_TOOLS_DIR"),
            tmp_dir=os.getenv("RENAMER_TMP_DIR"),
            output_dir=os.getenv("RENAMER_OUTPUT_DIR"),
            java_path=os.getenv("RENAMER_JAVA"),
            apktool_path=os.getenv("RENAMER_APKTOOL"),
            signer_path=os.getenv("RENAMER_SIGNER"),
            tool_timeout=float(os.getenv("RENAMER_TOOL_TIMEOUT", "3600")),
            segment=os.getenv("RENAMER_SEGMENT", "mrf"),
            align_mode=os.getenv("RENAMER_ALIGN_MODE", ALIGN_WITH_SIGNER),
            keystore_path=os.getenv("RENAMER_KEYSTORE"),
            key_alias=os.getenv("RENAMER_KEY_ALIAS"),
            keystore_pass=os.getenv("RENAMER_KEYSTORE_PASS"),
            key_pass=os.getenv("RENAMER_KEY_PASS"),
        )

    def workspace_for(self, base_name: str) -> Path:
        return self.tmp_dir / base_name

    def output_for(self, base_name: str) -> Path:
        return self.output_dir / base_name

    def ensure_dirs(self):
        for directory in (self.tools_dir, self.tmp_dir, self.output_dir):
            directory.mkdir(parents=True, exist_ok=True)
