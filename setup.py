from setuptools import setup, find_namespace_packages

setup(
    name="photo-albums",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["photo_albums*"]),
    install_requires=[
        "SQLAlchemy>=1.4.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.9",
)
