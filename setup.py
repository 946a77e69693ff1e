from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name="primalpair",
    version="0.1.0",
    author="Josh Quick",
    author_email="j.quick@bham.ac.uk",
    license="GPL",
    description="A tool for thermodynamic design and ranking of PCR primer pairs.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/aresti/primalscheme",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "biopython>=1.80,<2",
        "primer3-py>=2,<3",
        "click>=7",
        "progress>=1.5",
    ],
    extras_require={"test": ["pytest", "pytest-click"]},
    entry_points={"console_scripts": ["primalpair = primalpair.cli:main"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.7",
)
