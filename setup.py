from pathlib import Path
from setuptools import setup, find_packages


def read_readme() -> str:
    readme_path = Path(__file__).resolve().parent / "README.md"
    return readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""


setup(
    name="musicdecrypt",
    version="1.0.0",
    packages=find_packages(include=["musicdecrypt", "musicdecrypt.*"]),
    install_requires=[
        "cryptography>=41.0.0",
        "numpy>=1.24.0",
        "pillow>=10.0.0",
        "mutagen>=1.47.0",
        "colorama>=0.4.6",
    ],
    entry_points={
        "console_scripts": ["musicdecrypt=musicdecrypt.main:main"],
    },
    python_requires=">=3.10",
    description="Recover plain audio from NCM and KGG encrypted music containers",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
)
