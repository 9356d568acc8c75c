from setuptools import find_packages, setup

setup(
    name="dvfile",
    version="0.1.0",
    description="Read DeltaVision (.dv) microscopy files",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.9",
    install_requires=[
        "resource-backed-dask-array",
        "typing-extensions",
        "numpy>=1.14.5",
        "dask[array]",
    ],
    extras_require={
        "xarray": ["xarray"],
        "test": ["pytest", "psutil", "xarray"],
    },
)
