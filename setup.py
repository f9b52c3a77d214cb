# setup.py
from setuptools import setup, find_packages

setup(
    name="open_oracle",
    version="0.1.0",
    packages=find_packages(),
    install_requires=[
        "msgpack",            # registry export, callback payloads, hash preimages
        "pycryptodome",       # keccak-256
        "cryptography",       # ECDSA transaction signatures
        "prometheus_client",  # monitoring
        "psutil",             # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "oracle-tool=open_oracle.oracle_tool:main",
        ],
    },
)
