"""Setup script for the MediVerify drug registry following Cosmic Python pattern."""

from setuptools import setup, find_namespace_packages

setup(
    name="mediverify-registry",
    version="1.0.0",
    description="MediVerify - drug provenance registry, QR verification and recall alerts",
    author="MediVerify Team",
    package_dir={"": "src"},
    packages=find_namespace_packages(
        where="src",
        include=["shared*", "registry*", "notifications*", "verification*"],
    ),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn[standard]",
        "pydantic",
        "sqlalchemy>=2.0,<2.1",
        "psycopg2-binary",
        "redis",
        "requests",
        "tenacity",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-cov",
            "httpx",
            "fakeredis",
        ],
        "dev": [
            "black",
            "flake8",
            "mypy",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "mediverify-registry-api=registry.entrypoints.registry_api:main",
            "mediverify-verify-api=verification.entrypoints.verify_api:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Healthcare Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
)
