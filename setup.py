"""Packaging setup with an optional Cython build."""

import logging
import os
import sys
from pathlib import Path

from setuptools import Extension, find_packages, setup


LOGGER = logging.getLogger(__name__)

# Accept several truthy values for CYTHONIZE (so "True", True, "1", "true" all work)
CYTHONIZE_RAW = os.getenv("CYTHONIZE", "0")
CYTHONIZE = str(CYTHONIZE_RAW).strip().lower() in ("1", "true", "yes", "on")

if CYTHONIZE:
    from Cython.Build import cythonize

dist_name = "Harvest-Lens"
package_dir = "harvest_lens"
version = Path(__file__).with_name("VERSION.txt").read_text().strip()

install_requires = [
    "numpy>=1.24",
    "opencv-python>=4.8",
    "loguru>=0.7",
    "onnxruntime>=1.16",
    "psutil>=5.9",
    "flask>=3.0",
]

test_deps = ["pytest>=7.4"]

# Entry points stay pure Python so console scripts keep working in compiled wheels
KEEP_PURE = {"__init__.py", "cli.py", "monitor.py", "app.py"}


def list_py_files(package_dir: str | Path) -> list[str]:
    """Return compilable Python source files under the package directory."""
    root = Path(package_dir)
    return [str(path) for path in root.rglob("*.py") if path.name not in KEEP_PURE]


extensions = []
if CYTHONIZE:
    if sys.platform == "win32":
        extra_compile_args = ["/O2", "/MD"]
        extra_link_args = ["/OPT:REF", "/OPT:ICF"]
    else:
        extra_compile_args = ["-O3", "-fvisibility=hidden"]
        extra_link_args = []

    extensions = [
        Extension(
            py_file.replace(os.path.sep, ".")[:-3],
            [py_file],
            extra_compile_args=extra_compile_args,
            extra_link_args=extra_link_args,
        )
        for py_file in list_py_files(package_dir)
    ]
    LOGGER.info("Cythonizing %d modules", len(extensions))

setup_kwargs = {
    "name": dist_name,
    "version": version,
    "description": "Real-time fruit detection pipeline with live class counts",
    "python_requires": ">=3.10",
    "zip_safe": False,
    "packages": find_packages(include=[package_dir, f"{package_dir}.*"]),
    "package_data": {package_dir: ["streaming/templates/*.html"]},
    "install_requires": install_requires,
    "extras_require": {"test": test_deps},
    "entry_points": {
        "console_scripts": [
            "harvest-lens=harvest_lens.monitor:run_monitor",
            "harvest-lens-stream=harvest_lens.streaming.app:run",
        ]
    },
}

if CYTHONIZE:
    setup_kwargs["ext_modules"] = cythonize(
        extensions,
        compiler_directives={
            "language_level": "3",
            "emit_code_comments": False,
            "binding": False,
            "annotation_typing": False,
        },
    )

setup(**setup_kwargs)
