#!/usr/bin/env python
""" JSON-templated prepared statements for MongoDB """

from setuptools import setup, find_packages

setup(
    name='mongostmt',
    version='1.0.0',
    author='MongoStmt developers',

    license='BSD',
    description=__doc__,
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    keywords=['mongodb', 'pymongo', 'prepared statement'],

    packages=find_packages(exclude=('tests',)),
    scripts=[],
    entry_points={},

    python_requires='>= 3.6',
    install_requires=[
        'pymongo >= 3.7',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-cov',
        ],
    },
    include_package_data=True,

    platforms='any',
    classifiers=[
        # https://pypi.python.org/pypi?%3Aaction=list_classifiers
        'Development Status :: 5 - Production/Stable',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Database',
        'Topic :: Software Development :: Libraries :: Python Modules',
    ],
)
