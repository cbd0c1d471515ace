from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="directory-operator",
    version="0.1.0",
    author="LSA Technology Services",
    author_email="lsats@umich.edu",
    description="A Kubernetes operator that reconciles LDAP users, groups and server connections",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/directory-operator",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Systems Administration",
    ],
    python_requires=">=3.8",
    install_requires=[
        "ldap3>=2.9.0",
        "kopf>=1.36.0",
        "kubernetes>=26.1.0",
        "tenacity>=8.2.0",
        "python-dotenv>=0.15.0",
        "keyring>=23.0.0",
        "durationpy>=0.5",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            # Operator
            "directory-operator=scripts.directory_operator.run_operator:main",
        ],
    },
)
