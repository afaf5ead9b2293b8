import setuptools

setuptools.setup(
    name="flowpaths",
    version="0.1.0",
    author="flowpaths developers",
    description="Simulation of flow matching and diffusion probability paths in 2d",
    long_description=open("README.md", "r").read(),
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=open("requirements.txt").read().splitlines(),
    extras_require={"test": ["pytest"]},
)
