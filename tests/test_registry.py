import unittest

from support import OPENAI_KEY, REPLICATE_KEY, ScriptedAdapter

from image_gen_api.core.config import EnvConfigStore, StaticConfigStore
from image_gen_api.core.registry import ProviderRegistry
from image_gen_api.providers import OpenAIAdapter, ReplicateAdapter, build_default_registry
from image_gen_api.providers.replicate import FLUX_KONTEXT, FLUX_PRO, FLUX_SCHNELL


class TestRegistration(unittest.TestCase):
    def test_default_registry_has_builtin_providers(self) -> None:
        registry = build_default_registry()
        self.assertEqual([d.id for d in registry.list_descriptors()], ["openai", "replicate"])
        self.assertIsInstance(registry.get("openai"), OpenAIAdapter)
        self.assertIsInstance(registry.get("replicate"), ReplicateAdapter)
        self.assertIsNone(registry.get("midjourney"))

    def test_descriptors(self) -> None:
        registry = build_default_registry()
        descriptors = {d.id: d for d in registry.list_descriptors()}
        self.assertEqual(descriptors["openai"].display_name, "OpenAI")
        self.assertIn("gpt-image-1", descriptors["openai"].available_models)
        self.assertTrue(descriptors["openai"].supports_image_to_image("gpt-image-1"))
        self.assertFalse(descriptors["openai"].supports_image_to_image("dall-e-3"))
        self.assertTrue(descriptors["replicate"].supports_image_to_image(FLUX_KONTEXT))

    def test_registering_same_instance_is_idempotent(self) -> None:
        adapter = OpenAIAdapter()
        registry = ProviderRegistry([adapter])
        with self.assertNoLogs("image_gen_api.core.registry", level="WARNING"):
            registry.register(adapter)
        self.assertIs(registry.get("openai"), adapter)

    def test_duplicate_id_is_logged_and_replaced(self) -> None:
        registry = ProviderRegistry([OpenAIAdapter()])
        replacement = ScriptedAdapter()
        with self.assertLogs("image_gen_api.core.registry", level="WARNING") as logs:
            registry.register(replacement)
        self.assertIs(registry.get("openai"), replacement)
        self.assertIn("registered twice", logs.output[0])


class TestCapabilityQueries(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = build_default_registry()

    def test_no_key_means_no_image_to_image(self) -> None:
        config = StaticConfigStore(api_keys={})
        self.assertFalse(self.registry.supports_image_to_image("openai", config))
        self.assertEqual(self.registry.image_to_image_providers(config), [])

    def test_openai_default_model_supports_image_to_image(self) -> None:
        config = StaticConfigStore(api_keys={"openai": OPENAI_KEY})
        self.assertTrue(self.registry.supports_image_to_image("openai", config))

    def test_configured_model_drives_capability(self) -> None:
        config = StaticConfigStore(
            api_keys={"openai": OPENAI_KEY, "replicate": REPLICATE_KEY},
            models={"openai": "dall-e-3", "replicate": FLUX_KONTEXT},
        )
        self.assertEqual(self.registry.image_to_image_providers(config), ["replicate"])

    def test_replicate_model_from_quality(self) -> None:
        config = StaticConfigStore(api_keys={"replicate": REPLICATE_KEY}, quality="low")
        self.assertEqual(self.registry.current_model("replicate", config), FLUX_SCHNELL)
        config = StaticConfigStore(api_keys={"replicate": REPLICATE_KEY})
        self.assertEqual(self.registry.current_model("replicate", config), FLUX_PRO)
        self.assertFalse(self.registry.supports_image_to_image("replicate", config))

    def test_unknown_provider(self) -> None:
        config = StaticConfigStore(api_keys={"midjourney": "key"})
        self.assertFalse(self.registry.supports_image_to_image("midjourney", config))
        self.assertIsNone(self.registry.current_model("midjourney", config))
        self.assertIsNone(self.registry.bind("midjourney", config))

    def test_bind_uses_configured_key(self) -> None:
        config = StaticConfigStore(api_keys={"openai": OPENAI_KEY})
        bound = self.registry.bind("openai", config)
        self.assertEqual(bound.api_key, OPENAI_KEY)
        self.assertEqual(bound.model, "gpt-image-1")
        self.assertIsNot(bound, self.registry.get("openai"))
        self.assertEqual(self.registry.get("openai").api_key, "")

    def test_configured_descriptors(self) -> None:
        config = StaticConfigStore(api_keys={"replicate": REPLICATE_KEY})
        self.assertEqual([d.id for d in self.registry.configured_descriptors(config)], ["replicate"])


class TestEnvConfig(unittest.TestCase):
    def test_reads_keys_and_preferences(self) -> None:
        config = EnvConfigStore(
            {
                "OPENAI_API_KEY": OPENAI_KEY,
                "REPLICATE_API_KEY": REPLICATE_KEY,
                "AI_IMAGE_GEN_REPLICATE_MODEL": FLUX_KONTEXT,
                "AI_IMAGE_GEN_QUALITY": "HD",
                "AI_IMAGE_GEN_STYLE": "sepia",
            }
        )
        self.assertEqual(config.get_api_key("openai"), OPENAI_KEY)
        self.assertEqual(config.get_api_key("replicate"), REPLICATE_KEY)
        self.assertEqual(config.get_selected_model("replicate"), FLUX_KONTEXT)
        self.assertIsNone(config.get_selected_model("openai"))
        self.assertEqual(config.get_quality_preference(), "hd")
        self.assertEqual(config.get_style_preference(), "natural")

    def test_replicate_token_preferred(self) -> None:
        config = EnvConfigStore({"REPLICATE_API_TOKEN": "token", "REPLICATE_API_KEY": "key"})
        self.assertEqual(config.get_api_key("replicate"), "token")
        self.assertEqual(config.get_api_key("openai"), "")


if __name__ == "__main__":
    unittest.main()
