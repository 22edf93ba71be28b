from setuptools import setup, find_packages

setup(
    name="healthtrack",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "scripts", "alembic", "alembic.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy",
        "alembic",
        "psycopg2-binary",
        "python-jose[cryptography]",
        "pydantic",
        "pydantic-settings",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
