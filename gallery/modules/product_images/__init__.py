"""Product images module"""
