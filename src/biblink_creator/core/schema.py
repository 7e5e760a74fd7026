from .identifiers import IdentifierKind

XSD_STRING = "http://www.w3.org/2001/XMLSchema#string"
XSD_GYEAR = "http://www.w3.org/2001/XMLSchema#gYear"


class Schema:
    """URI layout of the data written to the destination repository."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace.rstrip("/")
        self.graph_path = f"{self.namespace}/graph/"
        self.property_path = f"{self.namespace}/property/"
        self.title_property = f"{self.property_path}title"
        self.year_property = f"{self.property_path}year"

    def identifier_property(self, kind: IdentifierKind) -> str:
        return f"{self.property_path}{kind.variable_name}"

    def data_graph_uri(self, repository_name: str) -> str:
        """Named graph holding the records copied from ``repository_name``."""
        return self.graph_path + repository_name.lower().replace(" ", "_")
