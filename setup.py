from setuptools import setup, find_packages


setup(
    name="satchel",
    version="0.1",
    packages=find_packages(include=["satchel", "satchel.*"]),
    description="A tar archiver with suffix-selected gzip, optional password sealing and guarded extraction.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "argon2-cffi>=23.1.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "satchel=satchel.cli:main",
        ]
    },
)
