from setuptools import setup, find_packages

setup(
    name="optforce",
    version="0.1",
    description="Identification of Must sets and flux interventions with OptForce for the COBRApy framework",
    long_description=("Computation of the first- and second-order Must sets of the OptForce procedure through "
                      "bilevel mixed-integer linear programs, and an interface for the outer OptForce search "
                      "for intervention sets that guarantee the overproduction of a target"),
    long_description_content_type="text/plain",
    license="Apache License 2.0",
    python_requires=">=3.8",
    packages=find_packages(include=["optforce", "optforce.*"]),
    install_requires=["cobra", "optlang", "swiglpk", "scipy>=1.9", "numpy", "pandas"],
    extras_require={"test": ["pytest", "pytest-timeout"]},
    classifiers=[
        "Intended Audience :: Science/Research", "Development Status :: 3 - Alpha", "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10", "Programming Language :: Python :: 3.11", "Programming Language :: Python :: 3.12",
        "Natural Language :: English", "Operating System :: OS Independent", "Topic :: Scientific/Engineering :: Bio-Informatics"
    ],
    keywords=["metabolism", "constraint-based", "mixed-integer", "bilevel", "optforce"],
    zip_safe=False,
)
