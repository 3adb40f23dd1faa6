#!/usr/bin/env python
""" A MongoDB query builder with models, relations, and soft delete """

from setuptools import setup, find_packages

setup(
    name='mongorel',
    version='1.0.0',
    author='Mark Vartanyan',
    author_email='kolypto@gmail.com',

    url='https://github.com/kolypto/py-mongorel',
    license='BSD',
    description=__doc__,
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    keywords=['mongodb', 'pymongo', 'orm'],

    packages=find_packages(exclude=('tests', 'tests.*')),
    scripts=[],
    entry_points={},

    python_requires='>= 3.6',
    install_requires=[
        'pymongo >= 3.11',
        'python-dateutil',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-cov',
            'mongomock >= 4.0',
            'nox',
        ],
        'doc': [
            'exdoc',
        ],
    },
    include_package_data=True,

    platforms='any',
    classifiers=[
        # https://pypi.python.org/pypi?%3Aaction=list_classifiers
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Database',
        'Topic :: Software Development :: Libraries :: Python Modules',
    ],
)
