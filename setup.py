from setuptools import find_packages, setup

setup(
    name="onioncourier",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "cryptography",
        "requests",
        "click",
        "argon2-cffi",
        "stem",
    ],
    extras_require={
        "test": ["pytest", "httpx"],
        "socks": ["requests[socks]"],
    },
    entry_points={
        "console_scripts": [
            "onioncourier=onioncourier.cli:cli",
        ],
    },
)
