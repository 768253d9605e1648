from setuptools import setup, find_packages
from pathlib import Path

# Read the README file for the long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    name="viewx",
    version="0.1.0",
    description="View extension and composition engine for plugin-extensible web views",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["viewx", "viewx.*"]),
    entry_points={
        "console_scripts": [
            "viewx=viewx.cli:app"
        ],
    },
    install_requires=[
        # Core dependencies only
        "typer>=0.9.0",
        "rich>=13.0.0",
        "lxml>=4.9.0",
        "python-slugify>=8.0.0",
        "pyyaml>=6.0",
        "jmespath>=1.0.0",
        "jinja2>=3.0.0",
        "markupsafe>=2.0.0",
        "sqlalchemy>=2.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "isort>=5.0.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Text Processing :: Markup :: HTML",
    ],
    python_requires='>=3.10',
    include_package_data=True,
)
