"""Setup configuration for callout-foundry package."""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = (
    readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""
)

setup(
    name="callout-foundry",
    version="1.0.0",
    description="Resilient outbound HTTPS callouts with retry, batched async dispatch and attempt logging",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["callouts", "callouts.*"]),
    python_requires=">=3.9",
    install_requires=[
        "httpx>=0.24.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "requests-toolbelt>=1.0.0",  # User-Agent construction
        "tenacity>=8.0.0",  # For retry logic
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=22.0.0",
            "flake8>=5.0.0",
            "mypy>=0.990",
            "types-PyYAML>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "callout-send=callouts.__main__:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="http callout retry exponential-backoff batch-dispatch named-credentials",
)
