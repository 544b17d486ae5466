# -*- coding: utf-8 -*-
"""
Created on Tue Oct  5 14:25:28 2021

@author: lukepinkel
"""

import setuptools


setuptools.setup(
    name="pycovsem",
    version="0.1.0",
    description="Covariance structure (SEM) models fitted to summary covariance matrices",
    packages=setuptools.find_namespace_packages(include=["pycovsem", "pycovsem.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.17.2',
        'numba>=0.45.1',
        'scipy>=1.5.3',
        'pandas>=1.2.1'
        ],
    extras_require={
        'test': ['pytest>=7.0'],
        },
)
