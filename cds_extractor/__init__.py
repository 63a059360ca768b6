"""
cds_extractor

Extractor de ContentDirectory (UPnP/DLNA): recorre un MediaServer y vuelca el XML
crudo de cada contenedor a un archivo zip.
"""
