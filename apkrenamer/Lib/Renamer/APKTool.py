import os
import sys
from pathlib import Path

from apkrenamer.Lib.Renamer.ToolRunner import ToolRunner, ToolResult


class APKTool:
    def __init__(self, jar_path, runner: ToolRunner, java_path: str = "java"):
        # Detect OS and normalize path
        if sys.platform.startswith("win"):
            # Ensure Windows paths use backslashes
            self.jar_path = os.path.abspath(jar_path)
        else:
            self.jar_path = str(jar_path)
        self.java_path = java_path
        self.runner = runner

    def decompile(self, apk_path, output_dir) -> ToolResult:
        Path(output_dir).parent.mkdir(parents=True, exist_ok=True)

        # Run apktool via java -jar (works on Windows + Linux)
        return self.runner.run([
            self.java_path, "-jar", self.jar_path,
            "d", apk_path, "-o", output_dir, "-f"
        ])

    def recompile(self, source_dir, output_apk) -> ToolResult:
        Path(output_apk).parent.mkdir(parents=True, exist_ok=True)

        return self.runner.run([
            self.java_path, "-jar", self.jar_path,
            "b", source_dir, "-o", output_apk, "-f"
        ])
