# Copyright (c) 2024 Advanced Micro Devices, Inc. All Rights Reserved.
#
# SPDX-License-Identifier: BSD-3-Clause

from pathlib import Path

import setuptools

here = Path(__file__).parent

with open(here / 'README.md', 'r') as f:
    long_description = f.read()

with open(here / 'dtbtree' / 'VERSION', 'r') as f:
    # This is option 3 in:
    # https://packaging.python.org/guides/single-sourcing-package-version/
    version = f.read().strip()

setuptools.setup(
    name='dtbtree',
    version=version,
    author='Bruce Ashfield',
    author_email='bruce.ashfield@amd.com',
    description='A flattened device tree blob decoder',
    license='BSD',
    long_description=long_description,
    long_description_content_type='text/markdown',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: BSD License',
        'Operating System :: POSIX :: Linux',
    ],
    packages=setuptools.find_packages(include=('dtbtree',)),
    python_requires='>=3.6',
    package_data={ 'dtbtree': [ 'VERSION', 'dtbtree.ini' ] },
    install_requires=[ "humanfriendly","configparser" ],
    extras_require={ "test": ["pytest"] },
    entry_points={'console_scripts': ('dtbtree = dtbtree.__main__:main',)},
)
