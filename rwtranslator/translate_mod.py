#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
translate_mod.py - Script de traduction simplifié
Usage rapide pour traduire un ou plusieurs mods (.zip / .rwmod)
"""

import os
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

from rw_translator_core import (
    ARCHIVE_EXTENSIONS, MergeMode, RWModTranslator, TranslationConfig,
    load_configuration, log_progress, validate_environment
)

def setup_logging(verbose=False):
    """Configure le système de logging"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

def check_prerequisites(args):
    """Vérifie que tous les prérequis sont présents"""
    logger = logging.getLogger(__name__)
    errors = []

    # Vérifier les fichiers mod
    for mod_file in args.mod_files:
        path = Path(mod_file)
        if not path.exists():
            errors.append(f"Fichier mod introuvable: {mod_file}")
        elif path.suffix.lower() not in ARCHIVE_EXTENSIONS:
            errors.append(f"Format non supporté: {mod_file} (attendu: .zip ou .rwmod)")

    # Vérifier la clé API
    if args.backend == "deepl" and not os.getenv('DEEPL_API_KEY'):
        errors.append("DEEPL_API_KEY manquant dans le fichier .env")

    # Fichier de configuration optionnel
    if not Path(args.config).exists():
        logger.warning(f"Fichier de configuration manquant: {args.config}")
        logger.warning("Utilisation de la configuration par défaut")

    return errors

def main(argv=None):
    parser = argparse.ArgumentParser(
        description="RW Mod Translator - Script de traduction simplifié",
        epilog="""
Exemples:
  rw-translate-mod MonMod.rwmod
  rw-translate-mod MonMod.zip AutreMod.rwmod --source zh_cn --target fr
  rw-translate-mod MonMod.rwmod --mode replace --dry-run
        """
    )

    # Arguments requis
    parser.add_argument("mod_files", nargs="+", help="Archives de mod à traduire")

    # Arguments optionnels avec valeurs par défaut
    parser.add_argument("--output", default="output/",
                        help="Dossier de sortie (défaut: output/)")
    parser.add_argument("--config", default="config/rw_translator_config.json",
                        help="Fichier de configuration (défaut: config/rw_translator_config.json)")
    parser.add_argument("--source", help="Langue source")
    parser.add_argument("--target", help="Langue cible")
    parser.add_argument("--mode", choices=[m.value for m in MergeMode],
                        help="Mode de fusion (add ou replace)")
    parser.add_argument("--backend", choices=["google", "deepl"], default=None,
                        help="Service de traduction")

    # Options
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Mode verbeux")
    parser.add_argument("--dry-run", action="store_true",
                        help="Simulation sans modification")

    args = parser.parse_args(argv)

    # Configuration du logging
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    # Chargement des variables d'environnement
    load_dotenv()

    # Configuration avec gestion d'erreur
    try:
        config = load_configuration(Path(args.config))
    except Exception as e:
        logger.warning(f"Erreur lors du chargement de la configuration: {e}")
        config = TranslationConfig()

    # Application des options CLI
    if args.source:
        config.source_lang = args.source
    if args.target:
        config.target_lang = args.target
    if args.mode:
        config.mode = args.mode
    if args.backend:
        config.backend = args.backend
    args.backend = config.backend

    # Vérification des prérequis
    errors = check_prerequisites(args)
    deepl_key = os.getenv('DEEPL_API_KEY')
    if not errors:
        errors = validate_environment(config, deepl_key)
    if errors:
        logger.error("Erreurs de configuration:")
        for error in errors:
            logger.error(f"  - {error}")
        return 1

    # Mode simulation
    if args.dry_run:
        logger.info("=== MODE SIMULATION ===")
        logger.info("Aucune modification ne sera effectuée")
        for mod_file in args.mod_files:
            logger.info(f"Fichier source: {mod_file}")
        logger.info(f"Sortie: {args.output}")
        logger.info(f"Langues: {config.source_lang} -> {config.target_lang}")
        logger.info(f"Mode: {config.mode}, backend: {config.backend}")
        return 0

    try:
        translator = RWModTranslator(config=config, deepl_key=deepl_key)
    except Exception as e:
        logger.error(f"Erreur lors de l'initialisation du traducteur: {e}")
        return 1

    failed = 0
    try:
        for mod_file in args.mod_files:
            logger.info(f"=== TRADUCTION: {mod_file} ===")
            result = translator.translate_mod(
                mod_path=Path(mod_file),
                output_path=Path(args.output),
                progress_callback=log_progress
            )

            if result.success:
                logger.info(f"Message: {result.message}")
                logger.info(f"Fichier généré: {result.data.output_file}")
            else:
                failed += 1
                logger.error(f"Message: {result.message}")
                if result.errors:
                    logger.error("Erreurs détaillées:")
                    for error in result.errors:
                        logger.error(f"  - {error}")

    except KeyboardInterrupt:
        logger.info("Traduction interrompue par l'utilisateur")
        return 130

    stats = translator.get_translation_stats()
    cache_stats = stats.get('cache_stats', {})
    if cache_stats:
        logger.info(f"Cache - Hits: {cache_stats.get('hits', 0)}, Misses: {cache_stats.get('misses', 0)}")

    if failed:
        logger.error(f"=== {failed}/{len(args.mod_files)} TRADUCTION(S) ÉCHOUÉE(S) ===")
        return 1

    logger.info("Traduction terminée avec succès!")
    return 0

if __name__ == "__main__":
    exit(main())
