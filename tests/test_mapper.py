"""
Tests for the module-level API and per-call behaviour of ObjectMapper.
"""

import logging
import threading

import jsonbind
from jsonbind import (
    DeserializationFeatures,
    IdentityInfo,
    ObjectMapper,
    PropertyDescriptor,
    SerializationFeatures,
    TypeDescriptor,
)


class Coordinates:
    def __init__(self, lat, lon):
        self.lat = lat
        self.lon = lon


class Celsius:
    def __init__(self, degrees):
        self.degrees = degrees


jsonbind.register(TypeDescriptor(
    cls=Coordinates,
    properties=(PropertyDescriptor(name="lat", hint=float), PropertyDescriptor(name="lon", hint=float)),
))


class TestModuleApi:
    """Functions backed by the default mapper."""

    def test_stringify_and_parse(self):
        """The module functions round trip registered classes."""
        text = jsonbind.stringify(Coordinates(1.5, 2.5))
        assert text == '{"lat":1.5,"lon":2.5}'
        point = jsonbind.parse(text, Coordinates)
        assert (point.lat, point.lon) == (1.5, 2.5)

    def test_serialize_and_deserialize(self):
        """Plain value trees are accepted and produced."""
        plain = jsonbind.serialize([Coordinates(0.0, 1.0)])
        assert plain == [{"lat": 0.0, "lon": 1.0}]
        points = jsonbind.deserialize(plain, list[Coordinates])
        assert points[0].lon == 1.0

    def test_module_converters(self):
        """Module-level converters apply to the default mapper."""
        jsonbind.register_serializer(Celsius, lambda c, ctx: f"{c.degrees}C")
        jsonbind.register_deserializer(Celsius, lambda text, ctx: Celsius(int(text.rstrip("C"))))
        assert jsonbind.serialize(Celsius(21)) == "21C"
        assert jsonbind.deserialize("21C", Celsius).degrees == 21


class TestMapperConfiguration:
    """Mapper-wide and per-call features."""

    def test_mapper_defaults(self):
        """Features given to the mapper apply to every call."""
        mapper = ObjectMapper(serialization_features=SerializationFeatures(wrap_root_value=True))
        mapper.registry.register(TypeDescriptor(cls=Celsius, properties=(PropertyDescriptor(name="degrees"),)))
        assert mapper.to_builtins(Celsius(3)) == {"Celsius": {"degrees": 3}}

    def test_per_call_override_does_not_stick(self, mapper):
        """Per-call overrides leave the mapper defaults untouched."""
        mapper.to_builtins(1.0, features={"write_nan_as_zero": True})
        assert mapper.serialization_features.write_nan_as_zero is False

    def test_deserialization_defaults(self):
        """Lenient deserialization can be the mapper default."""
        mapper = ObjectMapper(deserialization_features=DeserializationFeatures(fail_on_unknown_properties=False))
        mapper.registry.register(TypeDescriptor(cls=Celsius, properties=(PropertyDescriptor(name="degrees"),)))
        assert mapper.from_builtins({"degrees": 1, "scale": "C"}, Celsius).degrees == 1

    def test_debug_logging(self, mapper, caplog):
        """Calls are logged at debug level."""
        with caplog.at_level(logging.DEBUG, logger="jsonbind"):
            mapper.to_builtins([1])
        assert any("Serializing" in record.message for record in caplog.records)

    def test_missing_filter_warns(self, mapper, caplog):
        """An unknown filter id is reported as a warning."""
        mapper.registry.register(TypeDescriptor(
            cls=Celsius, filter="f", properties=(PropertyDescriptor(name="degrees"),),
        ))
        with caplog.at_level(logging.WARNING, logger="jsonbind"):
            assert mapper.to_builtins(Celsius(1)) == {"degrees": 1}
        assert any('"f"' in record.message for record in caplog.records)

    def test_concurrent_calls(self, mapper):
        """One mapper serves several threads; identity state is per call."""
        mapper.registry.register(TypeDescriptor(
            cls=Celsius, identity=IdentityInfo(), properties=(PropertyDescriptor(name="degrees"),),
        ))
        results = []

        def work(degrees):
            value = Celsius(degrees)
            results.append(mapper.to_builtins([value, value]))

        threads = [threading.Thread(target=work, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert all(plain[0]["@id"] == 1 and plain[1] == 1 for plain in results)
