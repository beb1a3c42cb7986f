import os

from setuptools import setup, find_packages

with open(os.path.join(os.path.dirname(__file__), "readme.md"), "r") as fh:
    long_description = fh.read()

setup(
    name='psrental',
    version='1.0.0',
    license='MIT',
    description='Session lifecycle and billing server for a console rental shop',
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires='>=3.8',
    install_requires=[
        'aiohttp',
        'uvloop',
        'aiobreaker',
        'aiohttp-cors',
        'aiohttp-apispec',
        'marshmallow>=3.13,<4',
        'marshmallow-jsonschema',
        'tortoise-orm>=0.19,<1',
        'sentry-sdk',
        'pynacl',
    ],
    extras_require={
        'test': [
            'pytest',
            'Faker',
        ],
    },
    entry_points={
        'console_scripts': ['psrental=psrental.cli:run'],
    },
)
