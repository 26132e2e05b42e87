from pathlib import Path
from typing import Optional

from apkrenamer.Lib.Renamer.ToolRunner import ToolRunner, ToolResult


class APKSigner:
    """
    Wraps uber-apk-signer. It writes `<name>-aligned-debugSigned.apk` (or a
    similar suffix depending on flags) into the output directory, so callers
    look the result up with `find_signed`.
    """

    def __init__(
        self,
        jar_path,
        runner: ToolRunner,
        java_path: str = "java",
        keystore_path=None,
        key_alias: Optional[str] = None,
        keystore_pass: Optional[str] = None,
        key_pass: Optional[str] = None,
    ):
        self.jar_path = str(jar_path)
        self.java_path = java_path
        self.runner = runner
        self.keystore_path = keystore_path
        self.key_alias = key_alias
        self.keystore_pass = keystore_pass
        self.key_pass = key_pass

    def sign(self, apk_path, output_dir, skip_zipalign: bool = False) -> ToolResult:
        Path(output_dir).mkdir(parents=True, exist_ok=True)

        cmd = [self.java_path, "-jar", self.jar_path, "-a", str(apk_path), "-o", str(output_dir)]
        if skip_zipalign:
            cmd.append("--skipZipAlign")
        if self.keystore_path:
            cmd += ["--ks", str(self.keystore_path)]
            if self.key_alias:
                cmd += ["--ksAlias", self.key_alias]
            if self.keystore_pass:
                cmd += ["--ksPass", self.keystore_pass]
            if self.key_pass:
                cmd += ["--ksKeyPass", self.key_pass]
        return self.runner.run(cmd)

    @staticmethod
    def find_signed(output_dir, base_name: str) -> Optional[Path]:
        output_dir = Path(output_dir)
        if not output_dir.is_dir():
            return None
        candidates = sorted(
            p for p in output_dir.iterdir()
            if p.is_file() and p.suffix == ".apk" and p.name.startswith(base_name)
        )
        return candidates[0] if candidates else None
