import os

from setuptools import find_packages, setup

version = {}
with open(os.path.join("mltrack", "version.py")) as f:
    exec(f.read(), version)

with open("README.md", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="mltrack",
    version=version["VERSION"],
    packages=find_packages(include=["mltrack", "mltrack.*"]),
    install_requires=[
        "click>=8.0",
        "Flask<4",
        "fastapi<1",
        "uvicorn<1",
        "gunicorn<24; platform_system != 'Windows'",
        "waitress<4; platform_system == 'Windows'",
        "PyJWT[crypto]>=2.4",
        "pyyaml>=5.1,<7",
        "requests>=2.17.3,<3",
        "sqlalchemy>=2.0,<2.1",
        "werkzeug>=2.3",
    ],
    extras_require={
        "postgres": ["psycopg2-binary>=2.9"],
        "test": [
            "pytest",
            "httpx",
            "psycopg2-binary>=2.9",
        ],
    },
    entry_points="""
        [console_scripts]
        mltrack=mltrack.cli:cli
    """,
    zip_safe=False,
    author="mltrack developers",
    description="mltrack: a namespaced tracking server for machine learning experiments",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="Apache License 2.0",
    classifiers=[
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.10",
    ],
    keywords="ml ai tracking",
    python_requires=">=3.10",
)
