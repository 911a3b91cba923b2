from setuptools import setup, find_namespace_packages

setup(
    name="shelf_finder",
    version="0.1.0",
    packages=find_namespace_packages(include=['cli*', 'core*']),
    include_package_data=True,
    install_requires=[
        "Click",
        "SQLAlchemy",
        "beautifulsoup4",
        "lxml",
        "requests",
        "pydantic",
        "python-dateutil",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "shelf=cli.main:main",
        ],
    },
)
