from setuptools import setup, find_packages

setup(
    name='PoreTrainer',
    version='0.1',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'pandas>=1.5',
        'numpy>=1.24',
        'matplotlib>=3.7',
        'seaborn>=0.12',
        'h5py>=3.8',
        'biopython',
    ],
    extras_require={
        'tests': ['pytest>=7'],
    },
    entry_points={
        'console_scripts': [
            'poretrainer=PoreTrainer.cli:main'
        ]
    },
    author='Nimrod de Wit',
    author_email='nimrod.de.wit@rivm.nl',
    description='CLI tool for training nanopore pore models from basecalled reads',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
        'Intended Audience :: Science/Research',
    ],
    python_requires='>=3.8',
)
