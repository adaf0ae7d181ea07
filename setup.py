from setuptools import find_packages, setup


install_requires = [
    "fsspec>=2023.6.0",
    "humanize",
    "loguru>=0.7.0",
    "multiprocess",
    "tqdm",
    "xxhash<4",
]

extras = {}

extras["cli"] = [
    "rich",
]

extras["s3"] = [
    "s3fs>=2023.12.2",
]

extras["quality"] = [
    "ruff>=0.1.5",
]

extras["testing"] = extras["cli"] + [
    "pytest",
    "pytest-timeout",
]

extras["all"] = extras["quality"] + extras["testing"]

extras["dev"] = extras["all"]

setup(
    name="topclients",
    version="0.0.1.dev0",  # expected format is one of x.y.z.dev0, or x.y.z.rc1 or x.y.z (no to dashes, yes to dots)
    description="Top N clients of access logs over a time window, with map/combine/reduce tasks",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    license="Apache 2.0",
    packages=find_packages("src"),
    package_dir={"": "src"},
    python_requires=">=3.10.0",
    install_requires=install_requires,
    extras_require=extras,
    classifiers=[
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Logging",
    ],
    keywords="logs access-log top-n mapreduce",
    entry_points={
        "console_scripts": [
            "top_clients=topclients.tools.run_top_clients:main",
            "show_top_clients=topclients.tools.show_top_clients:main",
        ]
    },
)
