"""Setup configuration for RMM Dashboard."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="rmm-dashboard",
    version="0.1.0",
    description="RMM Dashboard - terminal dashboard over Datto RMM, Datto AV, Sophos and RocketCyber",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="RMM Dashboard Team",
    python_requires=">=3.9",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["cli"],
    install_requires=[
        "rich>=13.0.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "rmm-dashboard=cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Systems Administration",
    ],
)
