# -*- coding: utf-8 -*-
"""
Setup Script for hpcpipe
"""
import os
import codecs

from setuptools import setup

###############################################################################
#                     Build the things we need for setup                      #
###############################################################################

# Get the long description from the README file
here = os.path.abspath(os.path.dirname(__file__))
with codecs.open(os.path.join(here, 'README.rst'), encoding='utf-8') as f:
    long_description = f.read()


###############################################################################
#                                Setup Options                                #
###############################################################################

setup(
    name='hpcpipe',
    version='0.1.0',
    description=('Build, submit, and track chains of analysis stages on ' +
                 'slurm or torque'),
    long_description=long_description,
    license='MIT',

    # See https://pypi.python.org/pypi?%3Aaction=list_classifiers
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Science/Research',
        'Environment :: Console',
        'Operating System :: POSIX :: Linux',
        'Natural Language :: English',
        'Topic :: System :: Clustering',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
        'Topic :: Software Development :: Libraries :: Python Modules',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
    ],

    keywords='slurm torque pipeline cluster job_management',

    python_requires='>=3.5',
    install_requires=['PyYAML', 'tabulate', 'tqdm'],
    tests_require=['pytest'],
    extras_require={'test': ['pytest']},
    packages=['hpcpipe', 'hpcpipe.batch_systems'],
    entry_points={
        'console_scripts': [
            'hpcpipe = hpcpipe.__main__:main',
        ]
    },
)
