from rest_framework.parsers import JSONParser


class AnyContentJSONParser(JSONParser):
    """Decode every request body as JSON, whatever Content-Type the client sent.

    ``curl -d`` defaults to ``application/x-www-form-urlencoded``; such a body
    is still read as JSON and a non-JSON body ends as a parse error (400).
    """

    media_type = "*/*"
