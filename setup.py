import os

from setuptools import find_packages, setup

with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

requirements_path = "requirements.txt"

if os.path.exists(requirements_path):
    with open(requirements_path, encoding="utf-8") as fh:
        requirements = [
            line.strip()
            for line in fh
            if line.strip() and not line.startswith("#") and not line.startswith("-r")
        ]
else:
    requirements = [
        "anthropic>=0.18.0",
        "openai>=1.0.0",
        "requests>=2.32.4",
        "rich>=13.0.0",
        "pydantic>=2.0.0",
        "PyYAML>=6.0",
    ]

setup(
    name="termprobe",
    version="0.1.0",
    author="Termprobe Contributors",
    description="Answer questions about a Linux host by orchestrating diagnostic shell commands with an LLM planner",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["termprobe", "termprobe.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Systems Administration",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: POSIX :: Linux",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "dev": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "termprobe=termprobe.cli:main",
        ],
    },
    include_package_data=True,
)
