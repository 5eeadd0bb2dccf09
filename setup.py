import setuptools

setuptools.setup(
    name="tbfwquery",
    version="1.0",
    author="FireWolf",
    description="Query Thunderbolt firmware info from macOS installers",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    install_requires=open("requirements.txt").read().splitlines(),
    python_requires=">=3.8",
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["tbfwquery=tbfwquery.app:app"],
    },
)
