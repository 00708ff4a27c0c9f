"""Setup configuration for edmconv."""

from setuptools import find_packages, setup

setup(
    name="edmconv",
    version="0.3.0",
    description="Dataset register harvester — resolve, convert to EDM, validate and publish",
    author="NDE EDM Conversie",
    python_requires=">=3.11",
    packages=find_packages(where="src", include=["edmconv*"]),
    package_dir={"": "src"},
    package_data={
        "edmconv": ["queries/*.rq", "shapes/*.ttl"],
    },
    include_package_data=True,
    install_requires=[
        "httpx>=0.27.0",
        "pandas>=2.2.0",
        "pydantic>=2.6.0",
        "pydantic-settings>=2.1.0",
        "rdflib>=7.0.0",
        "pyshacl>=0.26.0",
    ],
    entry_points={
        "console_scripts": [
            "edmconv=edmconv.cli:cli_entry",
        ],
    },
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-mock>=3.12.0",
            "respx>=0.21.0",
        ],
    },
)
