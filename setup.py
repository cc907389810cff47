from setuptools import setup, find_packages

setup(
    name="replconfig",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "cryptography>=41",
        "Jinja2>=3.1",
        "pydantic>=2",
        "PyYAML>=6",
        "rich>=13",
        "typer>=0.9",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "replconfig=replconfig.cli:main",
        ],
    },
)
