from pathlib import Path
from setuptools import setup, find_packages

ROOT = Path(__file__).parent
README = (ROOT / "README.md").read_text(encoding="utf-8")

setup(
    name="tokflo",
    version="0.1.0",
    description="Async Firestore backend for the TokFlo video commerce app, with Monime payments",
    long_description=README,
    long_description_content_type="text/markdown",
    author="TokFlo",
    license="MIT",
    packages=find_packages(exclude=("tests", "tests.*")),
    include_package_data=True,           # include py.typed
    package_data={"tokflo": ["py.typed"]},
    python_requires=">=3.8",
    install_requires=[
        "pydantic>=1.5,<3.0.0",
        "packaging",
        "google-cloud-firestore>=2.0.0",
        "fastapi>=0.95",
        "uvicorn",
        "httpx",
        "python-dotenv",
    ],
    extras_require={
        "emulator": ["google-cloud-firestore-emulator"],
        "dev": ["black", "ruff", "pytest", "pytest-asyncio"],
    },
    entry_points={
        "console_scripts": ["tokflo=tokflo.__main__:main"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Framework :: AsyncIO",
        "Framework :: FastAPI",
        "Typing :: Typed",
    ],
    keywords=[
        "firestore",
        "pydantic",
        "fastapi",
        "monime",
        "payments",
    ],
)
