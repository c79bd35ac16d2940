# ==============================================================================
# PyTreePoints - Trunk, height and canopy metrics from single-tree point clouds
# ------------------------------------------------------------------------------
# Copyright: 2018, Jan Zörner
# Licence: GNU GPLv3
# ==============================================================================

from setuptools import setup


with open('requirements.txt') as requirements_file:
    requirements = requirements_file.read().splitlines()

setup(
    name='PyTreePoints',
    version='0.2',
    test_suite='tests',
    packages=['pytreepoints'],
    install_requires=requirements,
    extras_require={'test': ['pytest']},
    python_requires='>=3.8',
    license='MIT',
    author='Dr. Jan Zörner',
    author_email='zoernerj@landcareresearch.co.nz',
    description="Trunk Diameter, Tree Height and Canopy Span from Point Clouds"
)
