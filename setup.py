#!/usr/bin/env python
# setup.py

"""
mssql_copydata setup file

To use:

    python setup.py sdist

    twine upload dist/*

To install in development mode:

    pip install -e .

"""

from setuptools import setup, find_packages
from codecs import open
from os import path

from mssql_copydata.version_string import VERSION_STRING

PACKAGE_NAME = "mssql_copydata"
THIS_DIR = path.abspath(path.dirname(__file__))
README_FILE = path.join(THIS_DIR, 'README.rst')  # read


# =============================================================================
# Get the long description from the README file
# =============================================================================

with open(README_FILE, encoding='utf-8') as f:
    long_description = f.read()


# =============================================================================
# Specify requirements
# =============================================================================

REQUIREMENTS = [
    # - Include most things that are imported without "try / except
    #   ImportError" handling.
    # - Include as few version requirements as possible.
    # - Keep it to pure-Python packages (for e.g. Windows installation with no
    #   compiler).

    "colorlog",
    "prettytable",
    "SQLAlchemy>=2.0",
]

EXTRAS_REQUIRE = {
    # The database driver needs an ODBC installation (and usually a
    # compiler), so it is optional; any SQLAlchemy SQL Server driver will do.
    "mssql": [
        "pyodbc",
    ],
    "tests": [
        "pytest",
    ],
}


# =============================================================================
# setup args
# =============================================================================

setup(
    name=PACKAGE_NAME,

    version=VERSION_STRING,

    description='Copy all table data between two SQL Server databases, '
                'suspending constraints and triggers around the transfer',
    long_description=long_description,

    # Choose your license
    license='Apache License 2.0',

    # See https://pypi.python.org/pypi?%3Aaction=list_classifiers
    classifiers=[
        # How mature is this project? Common values are
        #   3 - Alpha
        #   4 - Beta
        #   5 - Production/Stable
        'Development Status :: 4 - Beta',

        'Intended Audience :: System Administrators',

        # Pick your license as you wish (should match "license" above)
        'License :: OSI Approved :: Apache Software License',

        'Natural Language :: English',

        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',

        'Topic :: Database',
    ],

    keywords='sql server mssql copy data migration',

    packages=find_packages(),  # finds all the .py files in subdirectories

    install_requires=REQUIREMENTS,

    extras_require=EXTRAS_REQUIRE,

    entry_points={
        'console_scripts': [
            # Format is 'script=module:function".
            'mssql_copydata=mssql_copydata.tools.copy_database:main',
        ],
    },
)
