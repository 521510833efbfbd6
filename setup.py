from setuptools import setup, find_packages
import os

# Import version from NearbyCities/__init__.py
import re
with open(os.path.join('NearbyCities', '__init__.py'), 'r') as f:
    version = re.search(r"__version__\s*=\s*'(.*)'", f.read()).group(1)

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="NearbyCities",
    version=version,
    description="Find the cities near a city name, a point or an IP address using a geohash index in SQLite or PostgreSQL",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "pandas>=1.3.0",
        "flask>=2.2.0",
        "psycopg2-binary>=2.9.0",
        "click>=8.0.0",
        "pyyaml>=5.4",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "nearbycities=NearbyCities.__main__:main",
        ],
    },
)
