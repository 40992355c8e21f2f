from setuptools import setup, find_packages

setup(
    name="codectx",
    version="0.1.0",
    packages=find_packages(include=["codectx", "codectx.*", "cli", "cli.*"]),
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.7.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dotenv>=1.0.0",
        "PyYAML>=6.0",
        "openai>=1.8.0",
        "chromadb>=0.4.22",
        "scikit-learn>=1.3.0",
        "numpy>=1.24.0",
        "portalocker>=2.7.0",
        "loguru>=0.7.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "codectx=cli.main:app",
        ],
    },
    python_requires=">=3.10",
)
