"""
Setup for Sierra Backend package.
This makes 'sierra_backend' an installable Python package.
"""
from setuptools import setup, find_packages

setup(
    name="sierra-backend",
    version="1.0.0",
    packages=find_packages(include=["sierra_backend", "sierra_backend.*"]),
    package_data={"sierra_backend": ["requirements.txt"]},
    install_requires=[
        line.strip()
        for line in open('sierra_backend/requirements.txt')
        if line.strip() and not line.startswith('#')
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.26.0",
        ],
    },
    python_requires=">=3.9",
)
