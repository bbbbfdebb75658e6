"""
1. pip3 install setuptools
2. python3 setup.py build
3. sudo python3 setup.py install
"""

from setuptools import setup,find_packages
setup(
    name='revaultTx',
    version='0.0.1',
    description='Bitcoin transactions of the Revault vault protocol',
    install_requires=['ecdsa>=0.15', 'pycryptodome>=3.9'],
    extras_require={'test': ['pytest']},
    python_requires='>=3.6.7',
    packages=find_packages(exclude=['tests', 'tests.*'])
  )
