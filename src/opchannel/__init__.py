__author__ = 'Roland Hedberg'
__version__ = '0.3.0'
