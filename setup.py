#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='django-ldapschema',
    version='1.0.0',
    description='Schema-driven creation and querying of LDAP objects for Django',
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['django', 'ldap', 'active directory'],
    author="Caltech IMSS ADS",
    author_email="imss-ads-staff@caltech.edu",
    url='https://github.com/caltechads/django-ldapschema',
    packages=find_packages(exclude=['bin']),
    include_package_data=True,
    python_requires='>=3.10',
    install_requires=[
        'django',
        'pytz',
        'ldap_filter',
        'python-ldap',
    ],
    extras_require={
        'test': ['pytest', 'python-ldap-faker'],
    },
    classifiers=[
        "Programming Language :: Python :: 3"
    ],
)
