#!/usr/bin/env python3

from setuptools import setup, find_packages
import os


directory = os.path.dirname(os.path.realpath(__file__))


if __name__ == "__main__":
    setup(
        name="navforge",
        packages=find_packages(include=["navforge", "navforge.*"]),
        python_requires='>3.10.0',
        version="0.1.0",
        license="MIT",
        description="Dynamic navigation mesh generation and pathfinding",
        author="mirmik",
        author_email="mirmikns@yandex.ru",
        long_description=open(os.path.join(
            directory, "README.md"), "r", encoding="utf8").read(),
        long_description_content_type="text/markdown",
        keywords=["navmesh", "pathfinding", "geometry"],
        classifiers=[],
        install_requires=[
            "numpy",
            "scipy",
            "shapely>=2.0",
        ],
        extras_require={
            "test": ["pytest"],
        },
        zip_safe=False,
    )
