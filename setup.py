"""Setup configuration for Formsmith."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="formsmith",
    version="0.1.0",
    author="Formsmith Team",
    author_email="team@formsmith.dev",
    description="Form schema validation, publication and submission runtime",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/formsmith/formsmith",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: FastAPI",
    ],
    python_requires=">=3.9",
    install_requires=[
        "jsonschema>=4.20.0",
        "python-dateutil>=2.8.2",
        "typing-extensions>=4.8.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "openai>=1.12.0",
        "svix>=1.20.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.12.0",
            "httpx>=0.26.0",
            "black>=23.0.0",
            "mypy>=1.5.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "formsmith=formsmith.api:run",
        ],
    },
)
